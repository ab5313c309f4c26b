# ==============================================================================
# DÉPÔT DE SESSION
# ==============================================================================
# Encapsule l'accès à session.json : jeton d'accès et utilisateur courant.
# Vidé entièrement à la déconnexion.
# ==============================================================================

from typing import Any, Dict, Optional

from .base import DictRepository


class SessionRepository(DictRepository):
    """
    Session persistée entre deux lancements.

    Format de session.json :
    {
        "pharma_token": "1|abcdef...",
        "pharma_user": {"id": "1", "nom": "Martin", "role": "ADMIN", ...}
    }
    """

    TOKEN_KEY = 'pharma_token'
    USER_KEY = 'pharma_user'

    def get_token(self) -> Optional[str]:
        return self.get(self.TOKEN_KEY) or None

    def get_user(self) -> Optional[Dict[str, Any]]:
        user = self.get(self.USER_KEY)
        return user if isinstance(user, dict) else None

    def save_session(self, token: str, user: Dict[str, Any]) -> None:
        """Enregistre le jeton et l'utilisateur en une seule écriture."""
        self.set_many({self.TOKEN_KEY: token, self.USER_KEY: user})

    def clear_user(self) -> None:
        self.delete(self.USER_KEY)
