# ==============================================================================
# SERVICE D'HISTORIQUE
# ==============================================================================
# Journal d'activité de la session : chaque mutation confirmée par le
# backend (produit, vente, demande) y ajoute une entrée avec un message
# lisible. Le journal vit en mémoire et se vide à la déconnexion.
# ==============================================================================

import itertools
import threading
from datetime import datetime
from typing import List, Optional

from pharma_stock.models import (
    EntityType,
    HistoryAction,
    HistoryEntry,
    Product,
    ProductRequest,
    RequestStatus,
    Sale,
    User,
)


class HistoryService:
    """
    Registre et consultation de l'historique.

    Les entrées les plus récentes sont en tête de liste.
    """

    # Taille maximale du journal en mémoire
    MAX_ENTRIES = 1000

    def __init__(self):
        self._entries: List[HistoryEntry] = []
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    # =========================================================================
    # ENREGISTREMENT
    # =========================================================================

    def log(
        self,
        entity_type: EntityType,
        action: HistoryAction,
        user: User,
        entity_id: str,
        entity_name: str,
        message: str,
        quantity: int = None,
        quantity_before: int = None,
        quantity_after: int = None
    ) -> HistoryEntry:
        """
        Ajoute une entrée générique.

        Args:
            entity_type: Produit, vente ou demande
            action: Action effectuée
            user: Auteur de l'action
            entity_id: Identifiant de l'entité
            entity_name: Libellé de l'entité
            message: Message lisible
            quantity: Quantité en jeu
            quantity_before: Stock avant
            quantity_after: Stock après
        """
        with self._lock:
            entry = HistoryEntry(
                id=str(next(self._ids)),
                entity_type=entity_type,
                action=action,
                user_id=user.id,
                user_name=user.display_name,
                entity_id=entity_id,
                entity_name=entity_name,
                message=message,
                timestamp=datetime.now(),
                quantity=quantity,
                quantity_before=quantity_before,
                quantity_after=quantity_after,
            )
            self._entries.insert(0, entry)
            del self._entries[self.MAX_ENTRIES:]
            return entry

    def log_product_created(self, user: User, product: Product) -> HistoryEntry:
        message = f"Produit créé : {product.nom} (lot {product.numero_lot}) par {user.display_name}"
        return self.log(
            EntityType.PRODUCT, HistoryAction.CREATE, user, product.id, product.nom, message,
            quantity_after=product.quantite_boites,
        )

    def log_product_updated(self, user: User, before: Product, after: Product) -> HistoryEntry:
        message = f"Produit modifié : {after.nom} par {user.display_name}"
        if before.quantite_boites != after.quantite_boites:
            message += f" - Stock : {before.quantite_boites} → {after.quantite_boites}"
        return self.log(
            EntityType.PRODUCT, HistoryAction.UPDATE, user, after.id, after.nom, message,
            quantity_before=before.quantite_boites,
            quantity_after=after.quantite_boites,
        )

    def log_product_deleted(self, user: User, product: Product) -> HistoryEntry:
        message = f"Produit supprimé : {product.nom} par {user.display_name}"
        return self.log(
            EntityType.PRODUCT, HistoryAction.DELETE, user, product.id, product.nom, message,
            quantity_before=product.quantite_boites,
        )

    def log_sale_created(self, user: User, sale: Sale, stock_before: int, stock_after: int) -> HistoryEntry:
        message = f"Vente : {sale.quantite_vendue} x {sale.product_nom} par {user.display_name}"
        return self.log(
            EntityType.SALE, HistoryAction.CREATE, user, sale.id, sale.product_nom, message,
            quantity=sale.quantite_vendue,
            quantity_before=stock_before,
            quantity_after=stock_after,
        )

    def log_sale_updated(self, user: User, before: Sale, after: Sale) -> HistoryEntry:
        """La quantité avant/après est celle de la vente, pas du stock."""
        message = (
            f"Vente modifiée : {after.product_nom} "
            f"{before.quantite_vendue} → {after.quantite_vendue} par {user.display_name}"
        )
        return self.log(
            EntityType.SALE, HistoryAction.UPDATE, user, after.id, after.product_nom, message,
            quantity=after.quantite_vendue,
            quantity_before=before.quantite_vendue,
            quantity_after=after.quantite_vendue,
        )

    def log_sale_deleted(self, user: User, sale: Sale) -> HistoryEntry:
        message = f"Vente annulée : {sale.quantite_vendue} x {sale.product_nom} par {user.display_name}"
        return self.log(
            EntityType.SALE, HistoryAction.DELETE, user, sale.id, sale.product_nom, message,
            quantity=sale.quantite_vendue,
        )

    def log_request_created(self, user: User, request: ProductRequest) -> HistoryEntry:
        message = f"Demande : {request.quantite_demandee} x {request.product_nom} par {user.display_name}"
        return self.log(
            EntityType.REQUEST, HistoryAction.CREATE, user, request.id, request.product_nom, message,
            quantity=request.quantite_demandee,
        )

    def log_request_status(
        self,
        user: User,
        request: ProductRequest,
        stock_before: int = None,
        stock_after: int = None
    ) -> HistoryEntry:
        if request.status == RequestStatus.APPROVED:
            action = HistoryAction.VALIDATE
            message = f"Demande validée : +{request.quantite_demandee} {request.product_nom} par {user.display_name}"
        else:
            action = HistoryAction.INVALIDATE
            message = f"Demande refusée : {request.product_nom} par {user.display_name}"
        return self.log(
            EntityType.REQUEST, action, user, request.id, request.product_nom, message,
            quantity=request.quantite_demandee,
            quantity_before=stock_before,
            quantity_after=stock_after,
        )

    # =========================================================================
    # CONSULTATION
    # =========================================================================

    def get_entries(
        self,
        limit: int = None,
        entity_type: Optional[EntityType] = None,
        user_id: Optional[str] = None
    ) -> List[HistoryEntry]:
        """Entrées filtrées, les plus récentes d'abord."""
        with self._lock:
            entries = list(self._entries)
        if entity_type is not None:
            entries = [e for e in entries if e.entity_type == entity_type]
        if user_id is not None:
            entries = [e for e in entries if e.user_id == user_id]
        if limit is not None:
            entries = entries[:limit]
        return entries

    def search(self, query: str) -> List[HistoryEntry]:
        """Recherche insensible à la casse dans les messages et libellés."""
        query = (query or '').strip().lower()
        entries = self.get_entries()
        if not query:
            return entries
        return [
            e for e in entries
            if query in e.message.lower() or query in e.entity_name.lower() or query in e.user_name.lower()
        ]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
