# ==============================================================================
# COUCHE SERVICES - Logique métier du client
# ==============================================================================
# Les règles de stock et de session vivent ici, jamais dans les routes.
#
# STRUCTURE :
# ├── data_store.py        → Cache immuable + chargement complet (list_all)
# ├── auth_service.py      → Connexion, restauration, inscription
# ├── inventory_service.py → CRUD produits, catégories
# ├── sales_service.py     → Ventes et répercussion sur le stock
# ├── request_service.py   → Demandes de produits (validation / refus)
# ├── history_service.py   → Journal d'activité de la session
# ├── stats_service.py     → Tableau de bord, péremptions, historique des ventes
# └── validators.py        → Vérifications locales des saisies
# ==============================================================================

from .data_store import DataStore, LoadStatus, StoreSnapshot
from .history_service import HistoryService
from .auth_service import AuthService, SessionState
from .inventory_service import InventoryService
from .sales_service import SalesService
from .request_service import RequestService
from .stats_service import ExpirationBuckets, StatsService, bucket_expirations, days_until_expiration

__all__ = [
    'AuthService',
    'DataStore',
    'ExpirationBuckets',
    'HistoryService',
    'InventoryService',
    'LoadStatus',
    'RequestService',
    'SalesService',
    'SessionState',
    'StatsService',
    'StoreSnapshot',
    'bucket_expirations',
    'days_until_expiration',
]
