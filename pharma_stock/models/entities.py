# ==============================================================================
# ENTITÉS DU DOMAINE - Définitions des dataclasses
# ==============================================================================
# Chaque entité représente un concept métier de la pharmacie.
# Les entités sont immuables : toute modification du cache passe par
# dataclasses.replace() et produit une nouvelle instance.
# ==============================================================================

from dataclasses import dataclass
import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


# ==============================================================================
# ÉNUMÉRATIONS - États et types valides
# ==============================================================================

class UserRole(str, Enum):
    """Rôles disponibles dans le système."""
    ADMIN = "ADMIN"
    VENDEUR = "VENDEUR"


class RequestStatus(str, Enum):
    """États d'une demande de produit (valeurs identiques au backend)."""
    PENDING = "EN_ATTENTE"
    APPROVED = "VALIDE"
    REJECTED = "REFUSE"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


class EntityType(str, Enum):
    """Types d'entités tracées dans l'historique."""
    PRODUCT = "product"
    SALE = "sale"
    REQUEST = "request"


class HistoryAction(str, Enum):
    """Actions enregistrées dans l'historique."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    VALIDATE = "validate"
    INVALIDATE = "invalidate"


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ==============================================================================
# UTILISATEURS
# ==============================================================================

@dataclass(frozen=True)
class User:
    """
    Utilisateur authentifié ou membre de l'annuaire.

    Le mot de passe n'est jamais conservé sur l'entité.

    Attributes:
        id: Identifiant backend (sous forme de chaîne)
        nom: Nom de famille
        prenom: Prénom
        email: Adresse email (sert d'identifiant de connexion)
        role: Rôle (ADMIN ou VENDEUR)
        badge_id: Identifiant de badge
    """
    id: str
    nom: str
    prenom: str = ''
    email: str = ''
    role: UserRole = UserRole.VENDEUR
    badge_id: str = ''

    @property
    def is_admin(self) -> bool:
        """Vérifie si l'utilisateur a les droits administrateur."""
        return self.role == UserRole.ADMIN

    @property
    def display_name(self) -> str:
        return f"{self.prenom} {self.nom}".strip()

    def to_dict(self) -> Dict[str, Any]:
        """Convertit en dictionnaire pour la persistance de session."""
        return {
            'id': self.id,
            'nom': self.nom,
            'prenom': self.prenom,
            'email': self.email,
            'role': self.role.value,
            'badge_id': self.badge_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'User':
        """Crée une instance depuis un dictionnaire de session."""
        try:
            role = UserRole(data.get('role', UserRole.VENDEUR.value))
        except ValueError:
            role = UserRole.VENDEUR
        return cls(
            id=str(data.get('id') or ''),
            nom=data.get('nom', '') or '',
            prenom=data.get('prenom', '') or '',
            email=data.get('email', '') or '',
            role=role,
            badge_id=data.get('badge_id', '') or '',
        )


# ==============================================================================
# RÉFÉRENTIELS
# ==============================================================================

@dataclass(frozen=True)
class Category:
    id: str
    nom: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'nom': self.nom}


@dataclass(frozen=True)
class Supplier:
    id: str
    nom: str
    telephone: str = ''
    email: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'nom': self.nom,
            'telephone': self.telephone,
            'email': self.email,
        }


# ==============================================================================
# PRODUITS
# ==============================================================================

@dataclass(frozen=True)
class Product:
    """
    Produit du catalogue.

    Le stock suivi est le nombre de boîtes (quantite_boites). Il ne descend
    jamais sous zéro : seules les ventes confirmées le diminuent, seules les
    demandes validées ou les éditions manuelles l'augmentent.

    Attributes:
        id: Identifiant backend
        nom: Nom commercial
        categorie: Nom de la catégorie
        categorie_id: Identifiant backend de la catégorie
        fournisseur: Nom du fournisseur
        fournisseur_id: Identifiant backend du fournisseur
        numero_lot: Numéro de lot
        date_peremption: Date de péremption
        quantite_boites: Stock en boîtes
        quantite_unites: Unités détachées
        prix: Prix unitaire
        description: Texte libre
    """
    id: str
    nom: str
    categorie: str = ''
    categorie_id: Optional[int] = None
    fournisseur: str = ''
    fournisseur_id: Optional[int] = None
    numero_lot: str = ''
    date_peremption: Optional[dt.date] = None
    quantite_boites: int = 0
    quantite_unites: int = 0
    prix: Decimal = Decimal('0')
    description: str = ''

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantite_boites == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convertit en dictionnaire sérialisable JSON."""
        return {
            'id': self.id,
            'nom': self.nom,
            'categorie': self.categorie,
            'categorie_id': self.categorie_id,
            'fournisseur': self.fournisseur,
            'fournisseur_id': self.fournisseur_id,
            'numero_lot': self.numero_lot,
            'date_peremption': _iso(self.date_peremption),
            'quantite_boites': self.quantite_boites,
            'quantite_unites': self.quantite_unites,
            'prix': str(self.prix),
            'description': self.description,
        }


# ==============================================================================
# VENTES
# ==============================================================================

@dataclass(frozen=True)
class Sale:
    """
    Vente d'un produit.

    product_nom et user_name sont des copies dénormalisées prises au moment
    de la vente.
    """
    id: str
    product_id: str
    quantite_vendue: int
    date: Optional[dt.date] = None
    product_nom: str = ''
    user_id: str = ''
    user_name: str = ''
    created_at: Optional[dt.datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_nom': self.product_nom,
            'quantite_vendue': self.quantite_vendue,
            'date': _iso(self.date),
            'user_id': self.user_id,
            'user_name': self.user_name,
            'created_at': _iso(self.created_at),
        }


# ==============================================================================
# DEMANDES DE PRODUITS
# ==============================================================================

@dataclass(frozen=True)
class ProductRequest:
    """
    Demande de réapprovisionnement (ou d'ajout) émise par un vendeur.

    product_id absent signifie une demande pour un produit pas encore au
    catalogue. Le statut ne change qu'une fois : EN_ATTENTE -> VALIDE ou
    EN_ATTENTE -> REFUSE.
    """
    id: str
    quantite_demandee: int
    product_id: Optional[str] = None
    product_nom: str = ''
    commentaire: str = ''
    status: RequestStatus = RequestStatus.PENDING
    user_id: str = ''
    user_name: str = ''
    date_creation: Optional[dt.date] = None

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_nom': self.product_nom,
            'quantite_demandee': self.quantite_demandee,
            'commentaire': self.commentaire,
            'status': self.status.value,
            'user_id': self.user_id,
            'user_name': self.user_name,
            'date_creation': _iso(self.date_creation),
        }


# ==============================================================================
# HISTORIQUE
# ==============================================================================

@dataclass(frozen=True)
class HistoryEntry:
    """
    Entrée du journal d'activité de la session.

    Attributes:
        id: Identifiant local de l'entrée
        entity_type: Type d'entité concernée
        action: Action effectuée
        user_id: Auteur de l'action
        user_name: Nom de l'auteur
        entity_id: Identifiant de l'entité concernée
        entity_name: Libellé de l'entité concernée
        quantity: Quantité en jeu (vente, demande)
        quantity_before: Stock avant l'action
        quantity_after: Stock après l'action
        message: Message lisible
        timestamp: Date et heure de l'action
    """
    id: str
    entity_type: EntityType
    action: HistoryAction
    user_id: str
    user_name: str
    entity_id: str
    entity_name: str
    message: str
    timestamp: dt.datetime
    quantity: Optional[int] = None
    quantity_before: Optional[int] = None
    quantity_after: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'entity_type': self.entity_type.value,
            'action': self.action.value,
            'user_id': self.user_id,
            'user_name': self.user_name,
            'entity_id': self.entity_id,
            'entity_name': self.entity_name,
            'quantity': self.quantity,
            'quantity_before': self.quantity_before,
            'quantity_after': self.quantity_after,
            'message': self.message,
            'timestamp': self.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
        }
