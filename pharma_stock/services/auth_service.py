# ==============================================================================
# SERVICE D'AUTHENTIFICATION - Session de l'opérateur
# ==============================================================================
# Machine à états de la session :
#
#   LOADING ──restore()──► AUTHENTICATED ──logout() / 401──► UNAUTHENTICATED
#      └─────────────────► UNAUTHENTICATED ◄──login() échoué
#
# Pas de retour à LOADING sans relancer l'application.
# Les mots de passe ne sont jamais comparés, hachés ni conservés ici :
# le backend seul les vérifie.
# ==============================================================================

import logging
import threading
from enum import Enum
from typing import Callable, List, Optional

from pharma_stock.api import ApiClient
from pharma_stock.api.schemas import (
    ApiLoginResponse,
    ApiUtilisateur,
    parse_many,
    parse_one,
    register_payload,
)
from pharma_stock.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    PharmaError,
    UnauthorizedError,
    ValidationError,
)
from pharma_stock.models import User, UserRole
from pharma_stock.repositories import SessionRepository
from pharma_stock.services.data_store import DataStore
from pharma_stock.services.history_service import HistoryService

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class AuthService:
    """
    Connexion, déconnexion et restauration de la session.

    Usage :
        auth = AuthService(api, session_repo, data_store, history)
        auth.restore()
        if auth.login('admin@pharma.fr', 'secret'):
            ...
    """

    REGISTER_CONFLICT = "Email ou badge déjà utilisé"

    def __init__(
        self,
        api: ApiClient,
        session_repo: SessionRepository,
        data_store: DataStore,
        history: HistoryService
    ):
        self.api = api
        self.session_repo = session_repo
        self.data_store = data_store
        self.history = history
        self._state = SessionState.LOADING
        self._user: Optional[User] = None
        self._lock = threading.RLock()
        self._listeners: List[Callable[[SessionState], None]] = []

    # =========================================================================
    # ÉTAT
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._state == SessionState.AUTHENTICATED

    @property
    def is_admin(self) -> bool:
        return self._user is not None and self._user.is_admin

    def subscribe(self, listener: Callable[[SessionState], None]) -> Callable[[], None]:
        """Écouteur appelé à chaque changement d'état."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _swap(self, state: SessionState, user: Optional[User]) -> bool:
        """Change l'état en mémoire. À appeler sous self._lock."""
        changed = state != self._state
        self._state = state
        self._user = user
        return changed

    def _notify_state(self, state: SessionState) -> None:
        for listener in list(self._listeners):
            listener(state)

    def _set_state(self, state: SessionState, user: Optional[User]) -> None:
        with self._lock:
            changed = self._swap(state, user)
        if changed:
            self._notify_state(state)

    def require_user(self) -> User:
        """
        Utilisateur connecté, pour les services de mutation.

        Raises:
            UnauthorizedError: aucune session active
        """
        user = self._user
        if user is None or self._state != SessionState.AUTHENTICATED:
            raise UnauthorizedError(message="Veuillez vous connecter")
        return user

    def require_admin(self) -> User:
        """
        Raises:
            UnauthorizedError: aucune session active
            PermissionDeniedError: l'utilisateur n'est pas administrateur
        """
        user = self.require_user()
        if not user.is_admin:
            raise PermissionDeniedError("Action réservée aux administrateurs")
        return user

    # =========================================================================
    # CONNEXION / DÉCONNEXION
    # =========================================================================

    def login(self, identifier: str, secret: str) -> bool:
        """
        Connecte l'opérateur.

        Ne lève jamais : identifiants refusés, serveur injoignable ou réponse
        invalide renvoient False (la raison est journalisée).
        """
        identifier = (identifier or '').strip()
        if not identifier or not secret:
            return False

        try:
            payload = self.api.post('/login', {'email': identifier, 'password': secret})
            response = parse_one(ApiLoginResponse, payload)
        except PharmaError as e:
            logger.warning("Connexion refusée pour %s : %s", identifier, e)
            return False

        user = response.user.to_entity()
        # Fichier et état changent ensemble : restore() ne peut pas s'intercaler
        with self._lock:
            self.session_repo.save_session(response.token, user.to_dict())
            changed = self._swap(SessionState.AUTHENTICATED, user)
        if changed:
            self._notify_state(SessionState.AUTHENTICATED)
        logger.info("Connexion de %s (%s)", user.display_name, user.role.value)
        return True

    def logout(self) -> None:
        """Ferme la session : mémoire, fichier de session et cache vidés."""
        with self._lock:
            user = self._user
            self.session_repo.clear()
            changed = self._swap(SessionState.UNAUTHENTICATED, None)
        self.data_store.reset()
        self.history.clear()
        if changed:
            self._notify_state(SessionState.UNAUTHENTICATED)
        if user:
            logger.info("Déconnexion de %s", user.display_name)

    def handle_unauthorized(self) -> None:
        """Rappel de la passerelle sur un 401 : la session est déjà effacée du disque."""
        if self._state == SessionState.UNAUTHENTICATED:
            return
        logger.warning("Session expirée côté serveur")
        self.data_store.reset()
        self.history.clear()
        self._set_state(SessionState.UNAUTHENTICATED, None)

    # =========================================================================
    # RESTAURATION AU DÉMARRAGE
    # =========================================================================

    def restore(self) -> SessionState:
        """
        Restaure la session persistée.

        L'utilisateur enregistré n'est accepté que s'il est bien formé et si
        le backend le reconnaît encore (GET /users/{id}). Tout échec ramène à
        UNAUTHENTICATED sans lever. Une connexion ou une déconnexion
        survenue pendant la vérification l'emporte.
        """
        if self._state != SessionState.LOADING:
            return self._state

        stored = self.session_repo.get_user()
        token = self.session_repo.get_token()
        if not token or not self._is_well_formed(stored):
            if stored is not None:
                logger.warning("Utilisateur de session invalide, session ignorée")
            return self._finish_restore(token, None)

        user = User.from_dict(stored)
        try:
            remote = self._fetch_remote_user(user)
        except PharmaError as e:
            logger.warning("Vérification de la session impossible : %s", e)
            return self._finish_restore(token, None)

        if (user.id and remote.id != user.id) or (user.email and remote.email and remote.email != user.email):
            logger.warning("Session restaurée incohérente avec le serveur, session ignorée")
            return self._finish_restore(token, None)

        # Le rôle fait foi côté serveur
        return self._finish_restore(token, remote)

    def _finish_restore(self, token: Optional[str], user: Optional[User]) -> SessionState:
        """
        Applique le verdict de restore() si la session n'a pas bougé.

        Le verdict n'est appliqué que si l'état est encore LOADING et que le
        fichier porte toujours le jeton lu au départ. Sinon rien n'est écrit.
        """
        with self._lock:
            if self._state != SessionState.LOADING or self.session_repo.get_token() != token:
                logger.info("Restauration abandonnée : la session a changé pendant la vérification")
                return self._state
            if user is None:
                self.session_repo.clear_user()
                state = SessionState.UNAUTHENTICATED
            else:
                self.session_repo.save_session(token, user.to_dict())
                state = SessionState.AUTHENTICATED
            changed = self._swap(state, user)
        if changed:
            self._notify_state(state)
        return state

    @staticmethod
    def _is_well_formed(data) -> bool:
        if not isinstance(data, dict):
            return False
        has_identity = bool(data.get('id')) or bool(data.get('email'))
        has_name = bool(data.get('nom')) or bool(data.get('prenom'))
        return has_identity and has_name

    def _fetch_remote_user(self, user: User) -> User:
        """Relit l'utilisateur sur le backend, par id ou à défaut par email."""
        if user.id:
            return parse_one(ApiUtilisateur, self.api.get(f'/users/{user.id}')).to_entity()
        for remote in parse_many(ApiUtilisateur, self.api.get('/users')):
            if remote.email and remote.email.lower() == user.email.lower():
                return remote.to_entity()
        raise NotFoundError("Utilisateur de session inconnu du serveur")

    # =========================================================================
    # INSCRIPTION
    # =========================================================================

    def register(
        self,
        nom: str,
        prenom: str,
        email: str,
        password: str,
        password_confirmation: str,
        badge_id: str,
        role: UserRole = UserRole.VENDEUR
    ) -> None:
        """
        Crée un compte sur le backend (sans ouvrir de session).

        Raises:
            ValidationError: champ manquant, confirmation différente, ou
                             email / badge déjà utilisé
        """
        fields = {
            'nom': (nom or '').strip(),
            'prenom': (prenom or '').strip(),
            'email': (email or '').strip(),
            'password': password or '',
            'badge_id': (badge_id or '').strip(),
        }
        missing = [name for name, value in fields.items() if not value]
        if missing:
            raise ValidationError(
                "Tous les champs sont obligatoires",
                {name: ["Champ obligatoire"] for name in missing},
            )
        if password != password_confirmation:
            raise ValidationError(
                "Les mots de passe ne correspondent pas",
                {'password_confirmation': ["Les mots de passe ne correspondent pas"]},
            )

        body = register_payload(role=role, **fields)
        body['password_confirmation'] = password_confirmation
        try:
            self.api.post('/register', body)
        except ValidationError as e:
            logger.warning("Inscription refusée pour %s : %s", fields['email'], e)
            if e.errors or e.message != ValidationError.default_message:
                raise
            raise ValidationError(self.REGISTER_CONFLICT) from e
        logger.info("Compte créé pour %s", fields['email'])
