# ==============================================================================
# SERVICE DE VENTES
# ==============================================================================
# Règles de stock appliquées aux ventes :
#   - création : quantité <= stock en boîtes, vérifié AVANT l'appel réseau ;
#                après confirmation, vente en tête du cache et stock décrémenté
#   - modification : delta = ancienne quantité - nouvelle quantité appliqué
#                    au stock du produit après confirmation
#   - suppression : stock restitué après confirmation
# Modification et suppression sont réservées aux administrateurs.
# ==============================================================================

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Dict, Tuple

from pharma_stock.api import ApiClient
from pharma_stock.api.schemas import ApiVente, parse_one, sale_payload, sale_update_payload
from pharma_stock.exceptions import InsufficientStockError, NotFoundError, PharmaError
from pharma_stock.models import Product, Sale
from pharma_stock.services.auth_service import AuthService
from pharma_stock.services.data_store import DataStore
from pharma_stock.services.history_service import HistoryService
from pharma_stock.services.validators import require_fields, to_date, to_int

logger = logging.getLogger(__name__)


def _with_stock(products: Tuple[Product, ...], product_id: str, quantite_boites: int) -> Tuple[Product, ...]:
    return tuple(
        replace(p, quantite_boites=quantite_boites) if p.id == product_id else p
        for p in products
    )


class SalesService:
    """
    Enregistrement des ventes et répercussion sur le stock en cache.
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
    # CRÉATION
    # =========================================================================

    def create_sale(self, data: Dict[str, Any]) -> Sale:
        """
        Enregistre une vente.

        Args:
            data: product_id, quantite_vendue, date (optionnelle, aujourd'hui
                  par défaut)

        Raises:
            ValidationError: champ manquant ou quantité invalide
            NotFoundError: produit inconnu
            InsufficientStockError: quantité supérieure au stock en boîtes
        """
        user = self.auth.require_user()
        require_fields(data, ('product_id', 'quantite_vendue'), {'product_id': 'produit', 'quantite_vendue': 'quantité'})
        quantite = to_int(data['quantite_vendue'], 'quantite_vendue', minimum=1)
        sale_date = to_date(data['date'], 'date') if data.get('date') else date.today()

        with self.store.lock:
            generation = self.store.generation
            snapshot = self.store.snapshot
            product = snapshot.find_product(data['product_id'])
            if product is None:
                raise NotFoundError(f"Produit {data['product_id']} introuvable")
            if quantite > product.quantite_boites:
                raise InsufficientStockError(requested=quantite, available=product.quantite_boites)

            try:
                payload = self.api.post('/ventes', sale_payload(product.id, user.id, quantite, sale_date))
            except PharmaError as e:
                logger.warning("Vente de %s x %s refusée : %s", quantite, product.nom, e)
                raise

            sale = parse_one(ApiVente, payload).to_entity({product.id: product.nom}, {user.id: user.display_name})
            stock_after = max(0, product.quantite_boites - sale.quantite_vendue)
            self.store.commit(
                generation,
                sales=(sale,) + snapshot.sales,
                products=_with_stock(snapshot.products, product.id, stock_after),
            )

        self.history.log_sale_created(user, sale, product.quantite_boites, stock_after)
        logger.info("Vente %s : %s x %s", sale.id, sale.quantite_vendue, product.nom)
        return sale

    # =========================================================================
    # MODIFICATION / SUPPRESSION
    # =========================================================================

    def update_sale(self, sale_id: str, changes: Dict[str, Any]) -> Sale:
        """
        Modifie la quantité (et/ou la date) d'une vente.

        Le stock du produit varie de (ancienne quantité - nouvelle quantité).

        Raises:
            PermissionDeniedError: utilisateur non administrateur
            NotFoundError: vente inconnue
            InsufficientStockError: l'augmentation dépasse le stock disponible
        """
        user = self.auth.require_admin()
        fields = {}
        if 'quantite_vendue' in changes:
            fields['quantite_vendue'] = to_int(changes['quantite_vendue'], 'quantite_vendue', minimum=1)
        if changes.get('date'):
            fields['date'] = to_date(changes['date'], 'date')

        with self.store.lock:
            generation = self.store.generation
            snapshot = self.store.snapshot
            before = snapshot.find_sale(sale_id)
            if before is None:
                raise NotFoundError(f"Vente {sale_id} introuvable")
            if not fields:
                return before

            new_quantity = fields.get('quantite_vendue', before.quantite_vendue)
            delta = before.quantite_vendue - new_quantity
            product = snapshot.find_product(before.product_id)
            available = product.quantite_boites if product else 0
            if delta < 0 and -delta > available:
                raise InsufficientStockError(requested=-delta, available=available)

            try:
                payload = self.api.put(f'/ventes/{before.id}', sale_update_payload(fields))
            except PharmaError as e:
                logger.warning("Modification de la vente %s refusée : %s", before.id, e)
                raise

            after = replace(before, **fields)
            if payload:
                confirmed = parse_one(ApiVente, payload).to_entity({before.product_id: before.product_nom})
                after = replace(after, quantite_vendue=confirmed.quantite_vendue, date=confirmed.date)
                delta = before.quantite_vendue - after.quantite_vendue

            products = snapshot.products
            if product is not None and delta:
                products = _with_stock(products, product.id, max(0, product.quantite_boites + delta))
            self.store.commit(
                generation,
                sales=tuple(after if s.id == before.id else s for s in snapshot.sales),
                products=products,
            )

        self.history.log_sale_updated(user, before, after)
        return after

    def delete_sale(self, sale_id: str) -> Sale:
        """
        Annule une vente et restitue son stock.

        Raises:
            PermissionDeniedError: utilisateur non administrateur
            NotFoundError: vente inconnue
        """
        user = self.auth.require_admin()
        with self.store.lock:
            generation = self.store.generation
            snapshot = self.store.snapshot
            sale = snapshot.find_sale(sale_id)
            if sale is None:
                raise NotFoundError(f"Vente {sale_id} introuvable")

            try:
                self.api.delete(f'/ventes/{sale.id}')
            except PharmaError as e:
                logger.warning("Suppression de la vente %s refusée : %s", sale.id, e)
                raise

            products = snapshot.products
            product = snapshot.find_product(sale.product_id)
            if product is not None:
                products = _with_stock(products, product.id, product.quantite_boites + sale.quantite_vendue)
            self.store.commit(
                generation,
                sales=tuple(s for s in snapshot.sales if s.id != sale.id),
                products=products,
            )

        self.history.log_sale_deleted(user, sale)
        return sale
