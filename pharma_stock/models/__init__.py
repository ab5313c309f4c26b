# ==============================================================================
# COUCHE MODÈLES - Structures de données du système
# ==============================================================================
# Ce module définit toutes les entités du domaine avec des dataclasses.
#   - Indépendantes du format du backend (voir api/schemas.py pour le fil)
#   - Immuables : le cache ne contient que des instances gelées
# ==============================================================================

from .entities import (
    # Utilisateurs
    User,
    UserRole,

    # Référentiels
    Category,
    Supplier,

    # Catalogue
    Product,

    # Ventes
    Sale,

    # Demandes
    ProductRequest,
    RequestStatus,

    # Historique
    HistoryEntry,
    EntityType,
    HistoryAction,
)

__all__ = [
    'User',
    'UserRole',
    'Category',
    'Supplier',
    'Product',
    'Sale',
    'ProductRequest',
    'RequestStatus',
    'HistoryEntry',
    'EntityType',
    'HistoryAction',
]
