# ==============================================================================
# MAGASIN DE DONNÉES - Cache des collections du backend
# ==============================================================================
# Le cache est un instantané immuable (StoreSnapshot) remplacé d'un bloc :
#   - les lecteurs prennent l'instantané courant sans verrou
#   - les mutations et les rafraîchissements passent par un RLock unique,
#     un rafraîchissement ne peut donc pas écraser une vente en cours
#   - list_all() applique les six collections ensemble ou aucune
#   - reset() incrémente la génération : un commit préparé avant une
#     déconnexion est refusé au lieu de repeupler le cache
# ==============================================================================

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from pharma_stock.api import ApiClient
from pharma_stock.api.schemas import (
    ApiCategory,
    ApiDemandeProduit,
    ApiFournisseur,
    ApiProduit,
    ApiUtilisateur,
    ApiVente,
    parse_many,
)
from pharma_stock.exceptions import PharmaError, UnauthorizedError
from pharma_stock.models import Category, Product, ProductRequest, Sale, Supplier, User
from pharma_stock.performance_logger import profile_function

logger = logging.getLogger(__name__)


class LoadStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class StoreSnapshot:
    """
    État complet du cache à un instant donné.

    Les ventes sont triées de la plus récente à la plus ancienne.
    """
    products: Tuple[Product, ...] = ()
    sales: Tuple[Sale, ...] = ()
    product_requests: Tuple[ProductRequest, ...] = ()
    categories: Tuple[Category, ...] = ()
    suppliers: Tuple[Supplier, ...] = ()
    users: Tuple[User, ...] = ()
    status: LoadStatus = LoadStatus.IDLE
    error: Optional[str] = None

    def find_product(self, product_id: str) -> Optional[Product]:
        return next((p for p in self.products if p.id == str(product_id)), None)

    def find_sale(self, sale_id: str) -> Optional[Sale]:
        return next((s for s in self.sales if s.id == str(sale_id)), None)

    def find_request(self, request_id: str) -> Optional[ProductRequest]:
        return next((r for r in self.product_requests if r.id == str(request_id)), None)

    def find_category(self, nom: str) -> Optional[Category]:
        nom = (nom or '').strip().lower()
        return next((c for c in self.categories if c.nom.lower() == nom), None)

    def find_supplier(self, nom: str) -> Optional[Supplier]:
        nom = (nom or '').strip().lower()
        return next((s for s in self.suppliers if s.nom.lower() == nom), None)


Listener = Callable[[StoreSnapshot], None]


class DataStore:
    """
    Propriétaire du cache.

    Les services de mutation (produits, ventes, demandes) prennent le verrou
    `lock` pendant tout leur cycle : lecture du cache, appel réseau, commit.
    """

    LOAD_ERROR = "Échec du chargement des données"
    SESSION_CLOSED = "Session fermée pendant l'opération"

    # (chemin, schéma) des six collections chargées par list_all
    COLLECTIONS = {
        'products': ('/produits', ApiProduit),
        'sales': ('/ventes', ApiVente),
        'product_requests': ('/demandes-produits', ApiDemandeProduit),
        'categories': ('/categories', ApiCategory),
        'suppliers': ('/fournisseurs', ApiFournisseur),
        'users': ('/users', ApiUtilisateur),
    }

    def __init__(self, api: ApiClient):
        self.api = api
        self.lock = threading.RLock()
        # Protège uniquement l'échange de l'instantané, jamais un appel réseau
        self._swap_lock = threading.Lock()
        self._generation = 0
        self._snapshot = StoreSnapshot()
        self._listeners: List[Listener] = []

    @property
    def snapshot(self) -> StoreSnapshot:
        return self._snapshot

    # =========================================================================
    # ABONNEMENTS
    # =========================================================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Enregistre un écouteur appelé après chaque changement du cache.

        Returns:
            Fonction de désabonnement
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self, snapshot: StoreSnapshot) -> None:
        for listener in list(self._listeners):
            listener(snapshot)

    # =========================================================================
    # MISE À JOUR DU CACHE
    # =========================================================================

    @property
    def generation(self) -> int:
        """Numéro de session du cache, incrémenté par chaque reset()."""
        return self._generation

    def commit(self, expected_generation: Optional[int] = None, **changes) -> StoreSnapshot:
        """
        Remplace l'instantané courant par une copie modifiée.

        Args:
            expected_generation: Génération lue avant l'appel réseau. Si un
                                 reset() a eu lieu depuis, rien n'est appliqué.

        Raises:
            UnauthorizedError: la session a été fermée pendant l'opération
        """
        with self._swap_lock:
            if expected_generation is not None and expected_generation != self._generation:
                logger.info("Mise à jour du cache ignorée : session fermée entre-temps")
                raise UnauthorizedError(message=self.SESSION_CLOSED)
            self._snapshot = replace(self._snapshot, **changes)
            snapshot = self._snapshot
        self._notify(snapshot)
        return snapshot

    def reset(self) -> None:
        """
        Vide le cache (déconnexion) et invalide les opérations en cours.

        Ne prend pas `lock` : un 401 reçu par un thread de list_all()
        arrive ici pendant que le thread appelant le détient.
        """
        with self._swap_lock:
            self._generation += 1
            self._snapshot = StoreSnapshot()
            snapshot = self._snapshot
        self._notify(snapshot)

    # =========================================================================
    # CHARGEMENT COMPLET
    # =========================================================================

    @profile_function(name="Chargement complet")
    def list_all(self) -> StoreSnapshot:
        """
        Recharge les six collections en parallèle.

        En cas d'échec d'un seul appel, aucune collection n'est remplacée et
        le statut passe à ERROR avec un message unique.

        Raises:
            UnauthorizedError: la session a expiré ou a été fermée pendant
                               le chargement
        """
        with self.lock:
            generation = self._generation
            self.commit(generation, status=LoadStatus.LOADING, error=None)
            try:
                raw = self._fetch_all()
            except UnauthorizedError:
                raise
            except PharmaError as e:
                logger.error("%s : %s", self.LOAD_ERROR, e)
                return self.commit(generation, status=LoadStatus.ERROR, error=self.LOAD_ERROR)

            return self.commit(generation, status=LoadStatus.READY, error=None, **self._to_entities(raw))

    def _fetch_all(self) -> Dict[str, list]:
        with ThreadPoolExecutor(max_workers=len(self.COLLECTIONS)) as pool:
            futures = {
                name: pool.submit(self._fetch, path, model)
                for name, (path, model) in self.COLLECTIONS.items()
            }
            # result() relance la première erreur rencontrée
            return {name: future.result() for name, future in futures.items()}

    def _fetch(self, path: str, model) -> list:
        return parse_many(model, self.api.get(path))

    @staticmethod
    def _to_entities(raw: Dict[str, list]) -> Dict[str, tuple]:
        categories = tuple(c.to_entity() for c in raw['categories'])
        suppliers = tuple(s.to_entity() for s in raw['suppliers'])
        users = tuple(u.to_entity() for u in raw['users'])

        category_names = {c.id: c.nom for c in categories}
        supplier_names = {s.id: s.nom for s in suppliers}
        user_names = {u.id: u.display_name for u in users}

        products = tuple(p.to_entity(category_names, supplier_names) for p in raw['products'])
        product_names = {p.id: p.nom for p in products}

        sales = sorted(
            (s.to_entity(product_names, user_names) for s in raw['sales']),
            key=sale_sort_key,
            reverse=True,
        )
        product_requests = tuple(r.to_entity(product_names, user_names) for r in raw['product_requests'])

        return {
            'products': products,
            'sales': tuple(sales),
            'product_requests': product_requests,
            'categories': categories,
            'suppliers': suppliers,
            'users': users,
        }


def sale_sort_key(sale: Sale):
    """Clé de tri chronologique (date de vente puis horodatage, puis id)."""
    created = sale.created_at.replace(tzinfo=None) if sale.created_at else None
    return (
        sale.date.toordinal() if sale.date else 0,
        created.timestamp() if created else 0.0,
        int(sale.id) if sale.id.isdigit() else 0,
    )
