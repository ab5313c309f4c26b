# ==============================================================================
# CONTENEUR DE DÉPENDANCES - Injection des services
# ==============================================================================
# Point unique de construction des dépôts, de la passerelle API et des
# services. Les routes ne construisent jamais rien elles-mêmes : elles
# passent par le conteneur reçu dans create_app().
#
# Pas de singleton : chaque application (ou chaque test) crée le sien.
# ==============================================================================

from typing import Optional

import requests

from pharma_stock.api import ApiClient
from pharma_stock.config import Settings
from pharma_stock.repositories import SessionRepository
from pharma_stock.services import (
    AuthService,
    DataStore,
    HistoryService,
    InventoryService,
    RequestService,
    SalesService,
    StatsService,
)


class AppContainer:
    """
    Conteneur de l'application : construit chaque dépendance à la demande.

    Usage :
        container = AppContainer(Settings.from_env())
        container.auth_service.restore()
        container.sales_service.create_sale({...})
    """

    def __init__(self, settings: Settings = None, http: requests.Session = None):
        """
        Args:
            settings: Paramètres (par défaut lus dans l'environnement)
            http: Session requests à utiliser (injectable pour les tests)
        """
        self.settings = settings or Settings.from_env()
        self._http = http

        # Dépôts et passerelle (lazy loading)
        self._session_repo: Optional[SessionRepository] = None
        self._api: Optional[ApiClient] = None

        # Services (lazy loading)
        self._data_store: Optional[DataStore] = None
        self._history_service: Optional[HistoryService] = None
        self._auth_service: Optional[AuthService] = None
        self._inventory_service: Optional[InventoryService] = None
        self._sales_service: Optional[SalesService] = None
        self._request_service: Optional[RequestService] = None
        self._stats_service: Optional[StatsService] = None

    # =========================================================================
    # DÉPÔTS ET PASSERELLE
    # =========================================================================

    @property
    def session_repo(self) -> SessionRepository:
        if self._session_repo is None:
            self._session_repo = SessionRepository(self.settings.session_file)
        return self._session_repo

    @property
    def api(self) -> ApiClient:
        if self._api is None:
            self._api = ApiClient(
                self.settings.api_url,
                self.session_repo,
                timeout=self.settings.api_timeout,
                on_unauthorized=self._on_unauthorized,
                http=self._http,
            )
        return self._api

    def _on_unauthorized(self) -> None:
        self.auth_service.handle_unauthorized()

    # =========================================================================
    # SERVICES
    # =========================================================================

    @property
    def data_store(self) -> DataStore:
        if self._data_store is None:
            self._data_store = DataStore(self.api)
        return self._data_store

    @property
    def history_service(self) -> HistoryService:
        if self._history_service is None:
            self._history_service = HistoryService()
        return self._history_service

    @property
    def auth_service(self) -> AuthService:
        if self._auth_service is None:
            self._auth_service = AuthService(
                self.api,
                self.session_repo,
                self.data_store,
                self.history_service,
            )
        return self._auth_service

    @property
    def inventory_service(self) -> InventoryService:
        if self._inventory_service is None:
            self._inventory_service = InventoryService(
                self.data_store, self.api, self.auth_service, self.history_service
            )
        return self._inventory_service

    @property
    def sales_service(self) -> SalesService:
        if self._sales_service is None:
            self._sales_service = SalesService(
                self.data_store, self.api, self.auth_service, self.history_service
            )
        return self._sales_service

    @property
    def request_service(self) -> RequestService:
        if self._request_service is None:
            self._request_service = RequestService(
                self.data_store, self.api, self.auth_service, self.history_service
            )
        return self._request_service

    @property
    def stats_service(self) -> StatsService:
        if self._stats_service is None:
            self._stats_service = StatsService(lambda: self.data_store.snapshot)
        return self._stats_service
