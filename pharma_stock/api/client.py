# ==============================================================================
# PASSERELLE API - Client HTTP du backend pharmacie
# ==============================================================================
# Point de passage unique de tous les appels réseau :
#   - URL de base et délai venant de la configuration
#   - Jeton Bearer relu dans la session à CHAQUE requête
#   - Corps JSON en entrée et en sortie
#   - Traduction des échecs en erreurs normalisées (voir exceptions.py)
#   - 401 hors /login : la session est détruite et l'auth est prévenue,
#     sauf si le jeton a changé depuis l'envoi de la requête
# ==============================================================================

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from pharma_stock.exceptions import (
    DecodeError,
    HttpError,
    InsufficientStockError,
    NetworkError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from pharma_stock.performance_logger import record_api_call
from pharma_stock.repositories import SessionRepository

logger = logging.getLogger(__name__)

LOGIN_PATH = '/login'

# Fragments signalant un refus pour stock insuffisant dans le message du backend
_STOCK_MARKERS = ('stock insuffisant', 'insufficient stock', 'quantité insuffisante')


class ApiClient:
    """
    Passerelle HTTP vers le backend REST.

    Usage :
        client = ApiClient(settings.api_url, session_repo, timeout=10)
        produits = client.get('/produits')
        client.post('/ventes', {'produit_id': 1, 'quantite_vendue': 3, ...})
    """

    def __init__(
        self,
        base_url: str,
        session_repo: SessionRepository,
        timeout: float = 10.0,
        on_unauthorized: Callable[[], None] = None,
        http: requests.Session = None
    ):
        """
        Args:
            base_url: URL de base du backend (ex. http://localhost:8000/api)
            session_repo: Dépôt de session (source du jeton)
            timeout: Délai max d'un appel (secondes)
            on_unauthorized: Rappel invoqué après un 401 hors connexion
            http: Session requests (injectable pour les tests)
        """
        self.base_url = base_url.rstrip('/')
        self.session_repo = session_repo
        self.timeout = timeout
        self.on_unauthorized = on_unauthorized
        self.http = http or requests.Session()
        self.http.headers.update({'Accept': 'application/json'})

    # =========================================================================
    # VERBES HTTP
    # =========================================================================

    def get(self, path: str, params: Dict[str, Any] = None) -> Any:
        return self.request('GET', path, params=params)

    def post(self, path: str, body: Any = None) -> Any:
        return self.request('POST', path, body=body)

    def put(self, path: str, body: Any = None) -> Any:
        return self.request('PUT', path, body=body)

    def delete(self, path: str) -> Any:
        return self.request('DELETE', path)

    # =========================================================================
    # REQUÊTE GÉNÉRIQUE
    # =========================================================================

    def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        params: Dict[str, Any] = None
    ) -> Any:
        """
        Envoie une requête et renvoie le corps JSON décodé.

        Returns:
            Corps décodé, ou None pour une réponse vide / 204

        Raises:
            NetworkError: échec de transport ou délai dépassé
            UnauthorizedError: 401
            NotFoundError: 404
            ValidationError: 422 (erreurs par champ)
            InsufficientStockError: refus pour stock insuffisant
            HttpError: tout autre code non-2xx
            DecodeError: corps JSON illisible
        """
        if not path.startswith('/'):
            path = '/' + path
        url = self.base_url + path

        headers = {}
        token = self.session_repo.get_token()
        if token:
            headers['Authorization'] = f'Bearer {token}'

        start = time.perf_counter()
        status = None
        try:
            response = self.http.request(
                method,
                url,
                json=body,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
            status = response.status_code
        except requests.exceptions.Timeout as e:
            logger.warning("Délai dépassé pour %s %s", method, path)
            raise NetworkError("Le serveur ne répond pas (délai dépassé)") from e
        except requests.exceptions.RequestException as e:
            logger.warning("Échec réseau pour %s %s : %s", method, path, e)
            raise NetworkError() from e
        finally:
            record_api_call(method, path, (time.perf_counter() - start) * 1000, status)

        if 200 <= response.status_code < 300:
            return self._decode(response, method, path)

        self._raise_for_status(response, method, path, token)

    # =========================================================================
    # DÉCODAGE ET TRADUCTION DES ERREURS
    # =========================================================================

    def _decode(self, response: requests.Response, method: str, path: str) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.error("Réponse JSON illisible pour %s %s", method, path)
            raise DecodeError() from e

    @staticmethod
    def _error_body(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def _raise_for_status(
        self,
        response: requests.Response,
        method: str,
        path: str,
        token: Optional[str]
    ) -> None:
        status = response.status_code
        body = self._error_body(response)
        message = body.get('message') if isinstance(body, dict) else None

        if status == 401:
            if path.split('?')[0] == LOGIN_PATH:
                raise UnauthorizedError(body, message or "Identifiants invalides")
            if self.session_repo.get_token() != token:
                # Jeton remplacé pendant l'appel : la nouvelle session reste intacte
                logger.info("401 sur %s %s avec un ancien jeton, session conservée", method, path)
                raise UnauthorizedError(body)
            logger.info("401 sur %s %s : fermeture de la session", method, path)
            self.session_repo.clear()
            if self.on_unauthorized:
                self.on_unauthorized()
            raise UnauthorizedError(body)

        if status == 404:
            raise NotFoundError(message)

        if status == 422:
            errors = body.get('errors') if isinstance(body, dict) else None
            if not isinstance(errors, dict):
                errors = {}
            error = ValidationError(errors=errors)
            if not error.first_error() and message:
                error = ValidationError(message, errors)
            if self._mentions_stock(message) or self._mentions_stock(error.message):
                raise InsufficientStockError(error.message)
            raise error

        if status == 409 or self._mentions_stock(message):
            raise InsufficientStockError(message)

        logger.warning("HTTP %s pour %s %s", status, method, path)
        raise HttpError(status, body)

    @staticmethod
    def _mentions_stock(message: Optional[str]) -> bool:
        if not message:
            return False
        lowered = message.lower()
        return any(marker in lowered for marker in _STOCK_MARKERS)
