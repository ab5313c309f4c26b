# ==============================================================================
# COUCHE DÉPÔTS - Persistance locale
# ==============================================================================
# Seule la session (jeton + utilisateur) est persistée localement ; les
# données métier vivent sur le backend REST.
#
# STRUCTURE :
# ├── base.py               → Classes de base JSON (BaseRepository, DictRepository)
# └── session_repository.py → Accès à session.json
# ==============================================================================

from .base import BaseRepository, DictRepository
from .session_repository import SessionRepository

__all__ = [
    'BaseRepository',
    'DictRepository',
    'SessionRepository',
]
