# ==============================================================================
# ERREURS DU CLIENT
# ==============================================================================
# Taxonomie unique des erreurs remontées aux pages.
# Les services attrapent les échecs du backend, les journalisent puis
# relancent une de ces erreurs normalisées.
# ==============================================================================

from typing import Any, Dict, List, Optional


class PharmaError(Exception):
    """Erreur de base du client pharmacie."""

    default_message = "Une erreur est survenue"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PharmaError):
    """
    Champs manquants ou invalides.

    Levée localement avant l'appel réseau quand c'est possible, sinon
    construite depuis une réponse 422 structurée du backend.

    Attributes:
        errors: {champ: [messages]} tel que renvoyé par le backend
    """

    default_message = "Données invalides"

    def __init__(self, message: str = None, errors: Dict[str, List[str]] = None):
        self.errors = errors or {}
        if not message and self.errors:
            message = self.first_error()
        super().__init__(message)

    def first_error(self) -> Optional[str]:
        for messages in self.errors.values():
            if messages:
                return messages[0]
        return None


class InsufficientStockError(PharmaError):
    """La quantité demandée dépasse le stock disponible."""

    default_message = "Stock insuffisant"

    def __init__(self, message: str = None, requested: int = None, available: int = None):
        self.requested = requested
        self.available = available
        if not message and requested is not None and available is not None:
            message = f"Stock insuffisant : demandé {requested}, disponible {available}"
        super().__init__(message)


class NotFoundError(PharmaError):
    """Produit, vente ou demande introuvable."""

    default_message = "Élément introuvable"


class PermissionDeniedError(PharmaError):
    """Action réservée aux administrateurs."""

    default_message = "Permission refusée"


class AlreadyFinalizedError(PharmaError):
    """La demande a déjà été validée ou refusée."""

    default_message = "Cette demande a déjà été traitée"


class NetworkError(PharmaError):
    """Échec de transport (serveur injoignable, délai dépassé)."""

    default_message = "Serveur injoignable, veuillez réessayer"


class DecodeError(PharmaError):
    """Réponse du backend illisible ou non conforme au schéma attendu."""

    default_message = "Réponse du serveur invalide"


class HttpError(PharmaError):
    """
    Réponse non-2xx du backend.

    Attributes:
        status: Code HTTP
        body: Corps de la réponse (JSON décodé ou texte brut)
    """

    default_message = "Erreur du serveur"

    def __init__(self, status: int, body: Any = None, message: str = None):
        self.status = status
        self.body = body
        if not message and isinstance(body, dict):
            message = body.get('message')
        super().__init__(message or f"Erreur du serveur (HTTP {status})")


class UnauthorizedError(HttpError):
    """
    Réponse 401 : la session est invalide.

    Provoque la fermeture globale de la session (sauf sur l'endpoint de
    connexion), pas un message local.
    """

    def __init__(self, body: Any = None, message: str = None):
        super().__init__(401, body, message or "Session expirée, veuillez vous reconnecter")
