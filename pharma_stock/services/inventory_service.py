# ==============================================================================
# SERVICE D'INVENTAIRE
# ==============================================================================
# Création, modification et suppression des produits du catalogue.
# Les champs obligatoires sont vérifiés avant l'appel réseau ; le cache
# n'est modifié qu'après confirmation du backend.
# ==============================================================================

import logging
from dataclasses import replace
from typing import Any, Dict, List

from pharma_stock.api import ApiClient
from pharma_stock.api.schemas import ApiCategory, ApiProduit, parse_one, product_payload
from pharma_stock.exceptions import NotFoundError, PharmaError, ValidationError
from pharma_stock.models import Category, Product
from pharma_stock.services.auth_service import AuthService
from pharma_stock.services.data_store import DataStore, StoreSnapshot
from pharma_stock.services.history_service import HistoryService
from pharma_stock.services.validators import require_fields, to_date, to_int, to_price

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('nom', 'categorie', 'numero_lot')

FIELD_LABELS = {
    'nom': 'nom',
    'categorie': 'catégorie',
    'numero_lot': 'numéro de lot',
}


class InventoryService:
    """
    Gestion du catalogue (réservée aux administrateurs).

    Responsabilités :
    - CRUD des produits
    - Résolution catégorie / fournisseur (nom -> identifiant backend)
    - Création de catégories
    """

    def __init__(
        self,
        store: DataStore,
        api: ApiClient,
        auth: AuthService,
        history: HistoryService
    ):
        self.store = store
        self.api = api
        self.auth = auth
        self.history = history

    # =========================================================================
    # CONSULTATION
    # =========================================================================

    def search_by_name(self, query: str) -> List[Product]:
        query = (query or '').strip().lower()
        return [p for p in self.store.snapshot.products if query in p.nom.lower()]

    # =========================================================================
    # OPÉRATIONS SUR LES PRODUITS
    # =========================================================================

    def create_product(self, data: Dict[str, Any]) -> Product:
        """
        Crée un produit.

        Args:
            data: Champs du produit (nom, categorie, numero_lot,
                  date_peremption, quantite_boites, quantite_unites, prix,
                  fournisseur, description)

        Returns:
            Produit créé, avec l'identifiant attribué par le serveur

        Raises:
            ValidationError: champ obligatoire manquant ou invalide
            PermissionDeniedError: utilisateur non administrateur
        """
        user = self.auth.require_admin()
        require_fields(data, REQUIRED_FIELDS, FIELD_LABELS)
        if not data.get('date_peremption'):
            raise ValidationError(errors={'date_peremption': ["Le champ date de péremption est obligatoire"]})

        with self.store.lock:
            generation = self.store.generation
            snapshot = self.store.snapshot
            fields = self._clean_fields(data, snapshot)
            fields.setdefault('quantite_boites', 0)
            fields.setdefault('quantite_unites', 0)
            fields.setdefault('prix', to_price(0))

            try:
                payload = self.api.post('/produits', product_payload(fields))
            except PharmaError as e:
                logger.warning("Création du produit %s refusée : %s", fields['nom'], e)
                raise

            product = self._to_entity(payload, snapshot)
            self.store.commit(generation, products=snapshot.products + (product,))

        self.history.log_product_created(user, product)
        logger.info("Produit créé : %s (id %s)", product.nom, product.id)
        return product

    def update_product(self, product_id: str, changes: Dict[str, Any]) -> Product:
        """
        Modifie partiellement un produit.

        Raises:
            NotFoundError: produit inconnu
            ValidationError: valeur invalide
            PermissionDeniedError: utilisateur non administrateur
        """
        user = self.auth.require_admin()
        for field in REQUIRED_FIELDS:
            if field in changes and not str(changes[field] or '').strip():
                raise ValidationError(errors={field: [f"Le champ {FIELD_LABELS[field]} est obligatoire"]})

        with self.store.lock:
            generation = self.store.generation
            snapshot = self.store.snapshot
            before = snapshot.find_product(product_id)
            if before is None:
                raise NotFoundError(f"Produit {product_id} introuvable")
            fields = self._clean_fields(changes, snapshot)
            if not fields:
                return before

            try:
                payload = self.api.put(f'/produits/{before.id}', product_payload(fields))
            except PharmaError as e:
                logger.warning("Modification du produit %s refusée : %s", before.id, e)
                raise

            if payload:
                after = self._to_entity(payload, snapshot)
            else:
                after = replace(before, **fields)
            self.store.commit(generation, products=tuple(after if p.id == before.id else p for p in snapshot.products))

        self.history.log_product_updated(user, before, after)
        return after

    def delete_product(self, product_id: str) -> Product:
        """
        Supprime un produit. Le cache n'est modifié qu'après confirmation.

        Raises:
            NotFoundError: produit inconnu
            PermissionDeniedError: utilisateur non administrateur
        """
        user = self.auth.require_admin()
        with self.store.lock:
            generation = self.store.generation
            snapshot = self.store.snapshot
            product = snapshot.find_product(product_id)
            if product is None:
                raise NotFoundError(f"Produit {product_id} introuvable")

            try:
                self.api.delete(f'/produits/{product.id}')
            except PharmaError as e:
                logger.warning("Suppression du produit %s refusée : %s", product.id, e)
                raise

            self.store.commit(generation, products=tuple(p for p in snapshot.products if p.id != product.id))

        self.history.log_product_deleted(user, product)
        return product

    # =========================================================================
    # CATÉGORIES
    # =========================================================================

    def create_category(self, nom: str) -> Category:
        """
        Raises:
            ValidationError: nom vide ou catégorie déjà existante
        """
        self.auth.require_admin()
        nom = (nom or '').strip()
        if not nom:
            raise ValidationError(errors={'nom': ["Le nom de la catégorie est obligatoire"]})

        with self.store.lock:
            generation = self.store.generation
            snapshot = self.store.snapshot
            if snapshot.find_category(nom):
                raise ValidationError(errors={'nom': [f"La catégorie {nom} existe déjà"]})
            payload = self.api.post('/categories', {'nom': nom})
            category = parse_one(ApiCategory, payload).to_entity()
            self.store.commit(generation, categories=snapshot.categories + (category,))
        return category

    # =========================================================================
    # UTILITAIRES
    # =========================================================================

    def _clean_fields(self, data: Dict[str, Any], snapshot: StoreSnapshot) -> Dict[str, Any]:
        """Normalise les champs saisis et résout catégorie / fournisseur."""
        fields = {}
        for name in ('nom', 'numero_lot', 'description'):
            if name in data:
                fields[name] = str(data[name] or '').strip()
        if 'date_peremption' in data:
            fields['date_peremption'] = to_date(data['date_peremption'], 'date_peremption')
        for name in ('quantite_boites', 'quantite_unites'):
            if name in data:
                fields[name] = to_int(data[name], name, minimum=0)
        if 'prix' in data:
            fields['prix'] = to_price(data['prix'])

        if 'categorie' in data:
            category = snapshot.find_category(data['categorie'])
            if category is None:
                raise ValidationError(errors={'categorie': [f"Catégorie inconnue : {data['categorie']}"]})
            fields['categorie'] = category.nom
            fields['categorie_id'] = int(category.id)

        if data.get('fournisseur'):
            supplier = snapshot.find_supplier(data['fournisseur'])
            if supplier is None:
                raise ValidationError(errors={'fournisseur': [f"Fournisseur inconnu : {data['fournisseur']}"]})
            fields['fournisseur'] = supplier.nom
            fields['fournisseur_id'] = int(supplier.id)
        return fields

    @staticmethod
    def _to_entity(payload: Any, snapshot: StoreSnapshot) -> Product:
        categories = {c.id: c.nom for c in snapshot.categories}
        suppliers = {s.id: s.nom for s in snapshot.suppliers}
        return parse_one(ApiProduit, payload).to_entity(categories, suppliers)
