# ==============================================================================
# SERVICE DE STATISTIQUES - Vues dérivées du cache
# ==============================================================================
# Calculs purs sur un instantané : aucun appel réseau, aucune mutation.
#
# RÈGLE DES PÉREMPTIONS (jours = date de péremption - aujourd'hui) :
# - jours < 0        → périmé
# - 0 <= jours <= 30 → expire bientôt
# - jours > 30       → valide
# Chaque produit tombe dans exactement une des trois catégories.
# ==============================================================================

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence

from pharma_stock.models import Product, ProductRequest, Sale, User
from pharma_stock.services.data_store import StoreSnapshot, sale_sort_key

# Fenêtre "expire bientôt" (jours, bornes incluses)
EXPIRING_SOON_DAYS = 30


def days_until_expiration(product: Product, today: date) -> Optional[int]:
    """Nombre de jours avant péremption (négatif si périmé), None sans date."""
    if product.date_peremption is None:
        return None
    return (product.date_peremption - today).days


@dataclass(frozen=True)
class ExpirationBuckets:
    expired: List[Product] = field(default_factory=list)
    expiring_soon: List[Product] = field(default_factory=list)
    valid: List[Product] = field(default_factory=list)

    def to_dict(self, today: date) -> Dict[str, Any]:
        def rows(products):
            return [dict(p.to_dict(), jours_restants=days_until_expiration(p, today)) for p in products]
        return {
            'expired': rows(self.expired),
            'expiring_soon': rows(self.expiring_soon),
            'valid': rows(self.valid),
        }


def bucket_expirations(products: Sequence[Product], today: date) -> ExpirationBuckets:
    """
    Répartit les produits selon leur date de péremption.

    Un produit sans date est classé valide. Chaque liste est triée par date
    de péremption croissante.
    """
    buckets = ExpirationBuckets()
    for product in sorted(products, key=lambda p: (p.date_peremption is None, p.date_peremption or date.max)):
        days = days_until_expiration(product, today)
        if days is None or days > EXPIRING_SOON_DAYS:
            buckets.valid.append(product)
        elif days < 0:
            buckets.expired.append(product)
        else:
            buckets.expiring_soon.append(product)
    return buckets


class StatsService:
    """
    Tableau de bord, péremptions et historique des ventes.

    Responsabilités :
    - Compteurs du tableau de bord
    - Classement des péremptions
    - Historique des ventes filtré par rôle et recherche
    """

    def __init__(self, snapshot_loader: Callable[[], StoreSnapshot] = None):
        """
        Args:
            snapshot_loader: Fonction qui retourne l'instantané courant.
                             Injectable pour les tests.
        """
        self._snapshot_loader = snapshot_loader

    def _snapshot(self) -> StoreSnapshot:
        if self._snapshot_loader:
            return self._snapshot_loader()
        return StoreSnapshot()

    # =========================================================================
    # PÉREMPTIONS
    # =========================================================================

    def expirations(self, today: date = None) -> ExpirationBuckets:
        return bucket_expirations(self._snapshot().products, today or date.today())

    # =========================================================================
    # TABLEAU DE BORD
    # =========================================================================

    def dashboard(self, today: date = None) -> Dict[str, Any]:
        """
        Indicateurs du tableau de bord.

        Returns:
            dict avec total_produits, produits_perimes, produits_bientot_perimes,
            ruptures (liste), total_utilisateurs, produits_par_categorie,
            ventes_par_jour (quantités, par date croissante), total_vendu
        """
        today = today or date.today()
        snapshot = self._snapshot()
        buckets = bucket_expirations(snapshot.products, today)

        per_category = Counter(p.categorie or 'Sans catégorie' for p in snapshot.products)

        per_day = defaultdict(int)
        for sale in snapshot.sales:
            if sale.date is not None:
                per_day[sale.date.isoformat()] += sale.quantite_vendue

        return {
            'total_produits': len(snapshot.products),
            'produits_perimes': len(buckets.expired),
            'produits_bientot_perimes': len(buckets.expiring_soon),
            'ruptures': [p.to_dict() for p in snapshot.products if p.is_out_of_stock],
            'total_utilisateurs': len(snapshot.users),
            'produits_par_categorie': dict(sorted(per_category.items())),
            'ventes_par_jour': dict(sorted(per_day.items())),
            'total_vendu': sum(s.quantite_vendue for s in snapshot.sales),
            'demandes_en_attente': len(self.pending_requests(snapshot.product_requests)),
        }

    # =========================================================================
    # HISTORIQUE DES VENTES
    # =========================================================================

    def sales_history(self, user: User, search: str = '') -> Dict[str, Any]:
        """
        Ventes visibles par l'utilisateur.

        Un administrateur voit toutes les ventes, un vendeur les siennes.
        La recherche porte sur le nom du produit ou du vendeur (casse ignorée).
        """
        sales = visible_sales(self._snapshot().sales, user, search)
        return {
            'ventes': [s.to_dict() for s in sales],
            'nombre_ventes': len(sales),
            'total_vendu': sum(s.quantite_vendue for s in sales),
        }

    @staticmethod
    def pending_requests(product_requests: Sequence[ProductRequest]) -> List[ProductRequest]:
        """Demandes en attente, les plus anciennes d'abord."""
        pending = [r for r in product_requests if r.is_pending]
        return sorted(pending, key=lambda r: r.date_creation or date.min)


def visible_sales(sales: Sequence[Sale], user: User, search: str = '') -> List[Sale]:
    query = (search or '').strip().lower()
    result = [s for s in sales if user.is_admin or s.user_id == user.id]
    if query:
        result = [
            s for s in result
            if query in s.product_nom.lower() or query in s.user_name.lower()
        ]
    return sorted(result, key=sale_sort_key, reverse=True)
