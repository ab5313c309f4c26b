# ==============================================================================
# SERVICE DES DEMANDES DE PRODUITS
# ==============================================================================
# Cycle de vie d'une demande :
#
#   EN_ATTENTE ──validation──► VALIDE   (+quantité au stock du produit)
#        └──────refus────────► REFUSE   (aucun effet sur le stock)
#
# Une demande traitée ne change plus d'état : une seconde validation lève
# AlreadyFinalizedError avant tout appel réseau, le stock n'est donc
# jamais incrémenté deux fois.
# ==============================================================================

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Dict, List

from pharma_stock.api import ApiClient
from pharma_stock.api.schemas import ApiDemandeProduit, parse_one, request_payload, status_payload
from pharma_stock.exceptions import AlreadyFinalizedError, NotFoundError, PharmaError, ValidationError
from pharma_stock.models import ProductRequest, RequestStatus
from pharma_stock.services.auth_service import AuthService
from pharma_stock.services.data_store import DataStore
from pharma_stock.services.history_service import HistoryService
from pharma_stock.services.validators import to_int

logger = logging.getLogger(__name__)


class RequestService:
    """
    Demandes de réapprovisionnement : émises par tout utilisateur connecté,
    validées ou refusées par un administrateur.
    """

    def __init__(
        self,
        store: DataStore,
        api: ApiClient,
        auth: AuthService,
        history: HistoryService
    ):
        self.store = store
        self.api = api
        self.auth = auth
        self.history = history

    def get_requests(self, user_id: str = None) -> List[ProductRequest]:
        items = self.store.snapshot.product_requests
        if user_id is not None:
            return [r for r in items if r.user_id == user_id]
        return list(items)

    # =========================================================================
    # CRÉATION
    # =========================================================================

    def create_request(self, data: Dict[str, Any]) -> ProductRequest:
        """
        Crée une demande en attente, datée du jour.

        Args:
            data: product_id (optionnel), product_nom (obligatoire sans
                  product_id), quantite_demandee, commentaire

        Raises:
            ValidationError: quantité invalide ou produit non désigné
            NotFoundError: product_id inconnu
        """
        user = self.auth.require_user()
        quantite = to_int(data.get('quantite_demandee'), 'quantite_demandee', minimum=1)
        commentaire = str(data.get('commentaire') or '').strip()
        product_id = str(data.get('product_id') or '').strip() or None

        with self.store.lock:
            generation = self.store.generation
            snapshot = self.store.snapshot
            if product_id:
                product = snapshot.find_product(product_id)
                if product is None:
                    raise NotFoundError(f"Produit {product_id} introuvable")
                product_nom = product.nom
            else:
                product_nom = str(data.get('product_nom') or '').strip()
                if not product_nom:
                    raise ValidationError(errors={'product_nom': ["Indiquez le produit demandé"]})

            body = request_payload(product_id, product_nom, user.id, quantite, commentaire)
            try:
                payload = self.api.post('/demandes-produits', body)
            except PharmaError as e:
                logger.warning("Demande de %s x %s refusée : %s", quantite, product_nom, e)
                raise

            request = parse_one(ApiDemandeProduit, payload).to_entity(
                {product_id: product_nom} if product_id else None,
                {user.id: user.display_name},
            )
            request = replace(
                request,
                product_nom=request.product_nom or product_nom,
                date_creation=request.date_creation or date.today(),
            )
            self.store.commit(generation, product_requests=(request,) + snapshot.product_requests)

        self.history.log_request_created(user, request)
        return request

    # =========================================================================
    # VALIDATION / REFUS
    # =========================================================================

    def set_request_status(self, request_id: str, status: RequestStatus) -> ProductRequest:
        """
        Valide ou refuse une demande en attente.

        Une demande sans produit au catalogue ne peut pas être validée :
        l'administrateur crée d'abord le produit.

        Raises:
            PermissionDeniedError: utilisateur non administrateur
            NotFoundError: demande inconnue
            AlreadyFinalizedError: demande déjà validée ou refusée
            ValidationError: statut invalide, ou produit absent du catalogue
        """
        user = self.auth.require_admin()
        try:
            status = RequestStatus(status)
        except ValueError:
            raise ValidationError(errors={'status': [f"Statut inconnu : {status}"]})
        if not status.is_terminal:
            raise ValidationError(errors={'status': ["Statut attendu : VALIDE ou REFUSE"]})

        with self.store.lock:
            generation = self.store.generation
            snapshot = self.store.snapshot
            request = snapshot.find_request(request_id)
            if request is None:
                raise NotFoundError(f"Demande {request_id} introuvable")
            if not request.is_pending:
                raise AlreadyFinalizedError()

            product = snapshot.find_product(request.product_id) if request.product_id else None
            if status == RequestStatus.APPROVED and product is None:
                raise ValidationError(
                    f"Le produit « {request.product_nom} » n'existe pas encore : créez-le avant de valider la demande"
                )

            try:
                self.api.put(f'/demandes-produits/{request.id}', status_payload(status))
            except PharmaError as e:
                logger.warning("Changement de statut de la demande %s refusé : %s", request.id, e)
                raise

            updated = replace(request, status=status)
            changes = {
                'product_requests': tuple(updated if r.id == request.id else r for r in snapshot.product_requests),
            }
            stock_before = stock_after = None
            if status == RequestStatus.APPROVED:
                stock_before = product.quantite_boites
                stock_after = stock_before + request.quantite_demandee
                changes['products'] = tuple(
                    replace(p, quantite_boites=stock_after) if p.id == product.id else p
                    for p in snapshot.products
                )
            self.store.commit(generation, **changes)

        self.history.log_request_status(user, updated, stock_before, stock_after)
        logger.info("Demande %s : %s", updated.id, status.value)
        return updated
