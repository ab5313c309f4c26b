# ==============================================================================
# COUCHE API - Accès au backend REST
# ==============================================================================
# STRUCTURE :
# ├── client.py  → ApiClient (requests, jeton Bearer, traduction des erreurs)
# └── schemas.py → Modèles pydantic des réponses + corps des requêtes
# ==============================================================================

from .client import ApiClient
from .schemas import parse_many, parse_one

__all__ = [
    'ApiClient',
    'parse_many',
    'parse_one',
]
