# ==============================================================================
# SCHÉMAS DU BACKEND - Frontière de validation
# ==============================================================================
# Chaque ressource du backend est décrite par un modèle pydantic.
# Les réponses sont validées dès leur réception puis converties en entités
# du domaine ; toute réponse non conforme devient une DecodeError.
# Dans l'autre sens, les fonctions *_payload traduisent les champs des
# entités vers les noms attendus par le backend (produit_id, date_vente, ...).
# ==============================================================================

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as SchemaError

from pharma_stock.exceptions import DecodeError
from pharma_stock.models import (
    Category,
    Product,
    ProductRequest,
    RequestStatus,
    Sale,
    Supplier,
    User,
    UserRole,
)


def _strip_time(value: Any) -> Any:
    """'2025-06-30T00:00:00.000000Z' -> '2025-06-30'"""
    if isinstance(value, str) and 'T' in value:
        return value.split('T')[0]
    return value


def _full_name(prenom: Optional[str], nom: Optional[str]) -> str:
    return f"{prenom or ''} {nom or ''}".strip()


class ApiModel(BaseModel):
    model_config = ConfigDict(extra='ignore')


# ==============================================================================
# RÉFÉRENTIELS
# ==============================================================================

class ApiCategory(ApiModel):
    id: int
    nom: str

    def to_entity(self) -> Category:
        return Category(id=str(self.id), nom=self.nom)


class ApiFournisseur(ApiModel):
    id: int
    nom: str
    telephone: Optional[str] = None
    email: Optional[str] = None

    def to_entity(self) -> Supplier:
        return Supplier(
            id=str(self.id),
            nom=self.nom,
            telephone=self.telephone or '',
            email=self.email or '',
        )


class ApiRef(ApiModel):
    """Relation imbriquée (produit, utilisateur) dont seul le nom sert."""
    id: int
    nom: str = ''
    prenom: Optional[str] = None


# ==============================================================================
# UTILISATEURS
# ==============================================================================

class ApiUtilisateur(ApiModel):
    id: int
    nom: str
    prenom: Optional[str] = None
    email: Optional[str] = None
    role: UserRole = UserRole.VENDEUR
    badge_id: Optional[str] = None

    @field_validator('role', mode='before')
    @classmethod
    def _normalize_role(cls, value: Any) -> Any:
        if value is None:
            return UserRole.VENDEUR
        if isinstance(value, str):
            value = value.strip().upper()
            if value in ('VENDOR', 'SELLER'):
                return UserRole.VENDEUR
        return value

    def to_entity(self) -> User:
        return User(
            id=str(self.id),
            nom=self.nom,
            prenom=self.prenom or '',
            email=self.email or '',
            role=self.role,
            badge_id=self.badge_id or '',
        )


class ApiLoginResponse(ApiModel):
    token: str = Field(min_length=1, validation_alias=AliasChoices('token', 'access_token'))
    user: ApiUtilisateur


# ==============================================================================
# PRODUITS
# ==============================================================================

class ApiProduit(ApiModel):
    id: int
    nom: str
    categorie_id: Optional[int] = None
    fournisseur_id: Optional[int] = None
    numero_lot: Optional[str] = None
    date_peremption: date
    quantite_boites: int = Field(ge=0)
    quantite_unites: int = Field(default=0, ge=0)
    prix: Decimal = Field(ge=0)
    description: Optional[str] = None
    category: Optional[ApiCategory] = None
    fournisseur: Optional[ApiFournisseur] = None

    @field_validator('date_peremption', mode='before')
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return _strip_time(value)

    def to_entity(
        self,
        categories: Mapping[str, str] = None,
        suppliers: Mapping[str, str] = None
    ) -> Product:
        """
        Convertit en Product.

        Args:
            categories: {id: nom} pour résoudre categorie_id si la relation
                        n'est pas imbriquée dans la réponse
            suppliers: {id: nom}, même usage pour fournisseur_id
        """
        categorie = self.category.nom if self.category else ''
        if not categorie and categories and self.categorie_id is not None:
            categorie = categories.get(str(self.categorie_id), '')
        fournisseur = self.fournisseur.nom if self.fournisseur else ''
        if not fournisseur and suppliers and self.fournisseur_id is not None:
            fournisseur = suppliers.get(str(self.fournisseur_id), '')

        return Product(
            id=str(self.id),
            nom=self.nom,
            categorie=categorie,
            categorie_id=self.categorie_id,
            fournisseur=fournisseur,
            fournisseur_id=self.fournisseur_id,
            numero_lot=self.numero_lot or '',
            date_peremption=self.date_peremption,
            quantite_boites=self.quantite_boites,
            quantite_unites=self.quantite_unites,
            prix=self.prix,
            description=self.description or '',
        )


# ==============================================================================
# VENTES
# ==============================================================================

class ApiVente(ApiModel):
    id: int
    produit_id: int
    utilisateur_id: Optional[int] = None
    quantite_vendue: int = Field(gt=0)
    date_vente: date
    created_at: Optional[datetime] = None
    produit: Optional[ApiRef] = None
    utilisateur: Optional[ApiRef] = None

    @field_validator('date_vente', mode='before')
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return _strip_time(value)

    def to_entity(
        self,
        product_names: Mapping[str, str] = None,
        user_names: Mapping[str, str] = None
    ) -> Sale:
        product_id = str(self.produit_id)
        user_id = str(self.utilisateur_id) if self.utilisateur_id is not None else ''

        product_nom = self.produit.nom if self.produit else ''
        if not product_nom and product_names:
            product_nom = product_names.get(product_id, '')
        user_name = _full_name(self.utilisateur.prenom, self.utilisateur.nom) if self.utilisateur else ''
        if not user_name and user_names:
            user_name = user_names.get(user_id, '')

        return Sale(
            id=str(self.id),
            product_id=product_id,
            quantite_vendue=self.quantite_vendue,
            date=self.date_vente,
            product_nom=product_nom,
            user_id=user_id,
            user_name=user_name,
            created_at=self.created_at,
        )


# ==============================================================================
# DEMANDES DE PRODUITS
# ==============================================================================

class ApiDemandeProduit(ApiModel):
    id: int
    produit_id: Optional[int] = None
    produit_nom: Optional[str] = None
    utilisateur_id: Optional[int] = None
    quantite_demandee: int = Field(gt=0)
    commentaire: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    date_creation: Optional[date] = None
    produit: Optional[ApiRef] = None
    utilisateur: Optional[ApiRef] = None

    @field_validator('date_creation', mode='before')
    @classmethod
    def _date_only(cls, value: Any) -> Any:
        return _strip_time(value)

    def to_entity(
        self,
        product_names: Mapping[str, str] = None,
        user_names: Mapping[str, str] = None
    ) -> ProductRequest:
        product_id = str(self.produit_id) if self.produit_id is not None else None
        user_id = str(self.utilisateur_id) if self.utilisateur_id is not None else ''

        product_nom = self.produit.nom if self.produit else (self.produit_nom or '')
        if not product_nom and product_names and product_id:
            product_nom = product_names.get(product_id, '')
        user_name = _full_name(self.utilisateur.prenom, self.utilisateur.nom) if self.utilisateur else ''
        if not user_name and user_names:
            user_name = user_names.get(user_id, '')

        return ProductRequest(
            id=str(self.id),
            quantite_demandee=self.quantite_demandee,
            product_id=product_id,
            product_nom=product_nom,
            commentaire=self.commentaire or '',
            status=self.status,
            user_id=user_id,
            user_name=user_name,
            date_creation=self.date_creation,
        )


# ==============================================================================
# ANALYSE DES RÉPONSES
# ==============================================================================

M = TypeVar('M', bound=BaseModel)


def _unwrap(payload: Any) -> Any:
    """Les ressources Laravel peuvent être enveloppées dans {"data": ...}."""
    if isinstance(payload, dict) and set(payload.keys()) >= {'data'} and not isinstance(payload.get('id'), int):
        return payload['data']
    return payload


def parse_one(model: Type[M], payload: Any) -> M:
    """
    Valide un objet unique.

    Raises:
        DecodeError: si la réponse ne respecte pas le schéma
    """
    try:
        return model.model_validate(_unwrap(payload))
    except SchemaError as e:
        raise DecodeError(f"Réponse {model.__name__} invalide ({e.error_count()} erreur(s))") from e


def parse_many(model: Type[M], payload: Any) -> List[M]:
    """
    Valide une liste d'objets.

    Raises:
        DecodeError: si la réponse n'est pas une liste ou si un élément est invalide
    """
    items = _unwrap(payload)
    if not isinstance(items, list):
        raise DecodeError(f"Liste {model.__name__} attendue")
    return [parse_one(model, item) for item in items]


# ==============================================================================
# CONSTRUCTION DES CORPS DE REQUÊTE
# ==============================================================================

PRODUCT_FIELDS = (
    'nom', 'categorie_id', 'fournisseur_id', 'numero_lot', 'date_peremption',
    'quantite_boites', 'quantite_unites', 'prix', 'description',
)


def wire_id(value: Any) -> Any:
    """Les identifiants sont des chaînes côté client, des entiers côté backend."""
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return value


def _wire_value(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def product_payload(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Traduit les champs d'un produit (création ou mise à jour partielle)."""
    payload = {}
    for name in PRODUCT_FIELDS:
        if name not in fields:
            continue
        value = fields[name]
        if name in ('categorie_id', 'fournisseur_id'):
            value = wire_id(value)
        payload[name] = _wire_value(value)
    return payload


def sale_payload(product_id: str, user_id: str, quantite_vendue: int, sale_date: date) -> Dict[str, Any]:
    return {
        'produit_id': wire_id(product_id),
        'utilisateur_id': wire_id(user_id),
        'quantite_vendue': quantite_vendue,
        'date_vente': sale_date.isoformat(),
    }


def sale_update_payload(changes: Dict[str, Any]) -> Dict[str, Any]:
    payload = {}
    if 'quantite_vendue' in changes:
        payload['quantite_vendue'] = changes['quantite_vendue']
    if 'date' in changes:
        payload['date_vente'] = _wire_value(changes['date'])
    return payload


def request_payload(
    product_id: Optional[str],
    product_nom: str,
    user_id: str,
    quantite_demandee: int,
    commentaire: str
) -> Dict[str, Any]:
    return {
        'produit_id': wire_id(product_id),
        'produit_nom': product_nom,
        'utilisateur_id': wire_id(user_id),
        'quantite_demandee': quantite_demandee,
        'commentaire': commentaire,
    }


def status_payload(status: RequestStatus) -> Dict[str, Any]:
    return {'status': status.value}


def register_payload(
    nom: str,
    prenom: str,
    email: str,
    password: str,
    role: UserRole,
    badge_id: str
) -> Dict[str, Any]:
    return {
        'nom': nom,
        'prenom': prenom,
        'email': email,
        'password': password,
        'role': role.value,
        'badge_id': badge_id,
    }
