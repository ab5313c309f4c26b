# ==============================================================================
# APPLICATION FLASK - Pages du client pharmacie
# ==============================================================================
# Les routes ne contiennent aucune règle métier : elles lisent la requête,
# appellent un service du conteneur et renvoient du JSON.
#
# Accès :
#   - publiques  : /login, /register
#   - connectées : /dashboard, /produits, /ventes, /peremptions, /demandes,
#                  /historique
#   - admin      : /validation
# Session en cours de vérification (LOADING) → 202 "patientez", pas de
# redirection vers /login.
# ==============================================================================

import logging
import threading
from datetime import date
from functools import wraps

from flask import Flask, current_app, redirect, request, url_for
from werkzeug.exceptions import MethodNotAllowed, NotFound

from pharma_stock.app_container import AppContainer
from pharma_stock.config import configure_logging
from pharma_stock.exceptions import (
    AlreadyFinalizedError,
    DecodeError,
    HttpError,
    InsufficientStockError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    PharmaError,
    UnauthorizedError,
    ValidationError,
)
from pharma_stock.models import EntityType, RequestStatus, UserRole
from pharma_stock.performance_logger import init_profiling
from pharma_stock.services import SessionState

logger = logging.getLogger(__name__)

# Code HTTP renvoyé pour chaque erreur métier
ERROR_STATUS = (
    (ValidationError, 422),
    (InsufficientStockError, 409),
    (AlreadyFinalizedError, 409),
    (NotFoundError, 404),
    (PermissionDeniedError, 403),
    (NetworkError, 503),
    (DecodeError, 502),
    (HttpError, 502),
)


def _container() -> AppContainer:
    return current_app.extensions['pharma_stock']


def _payload() -> dict:
    """Corps de la requête : JSON ou formulaire."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


# ═══════════════════════════════════════════════════════════════════════════
# DÉCORATEURS D'ACCÈS
# ═══════════════════════════════════════════════════════════════════════════

def _loading_response():
    return {"ok": False, "loading": True, "message": "Vérification de la session..."}, 202


def login_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        auth = _container().auth_service
        if auth.state == SessionState.LOADING:
            return _loading_response()
        if not auth.is_authenticated:
            return redirect(url_for("login"))
        return f(*args, **kwargs)
    return wrapper


def admin_required(f):
    @wraps(f)
    @login_required
    def wrapper(*args, **kwargs):
        if not _container().auth_service.is_admin:
            return {"ok": False, "error": "Permission refusée"}, 403
        return f(*args, **kwargs)
    return wrapper


# ═══════════════════════════════════════════════════════════════════════════
# RESTAURATION DE SESSION AU DÉMARRAGE
# ═══════════════════════════════════════════════════════════════════════════

def restore_session(container: AppContainer) -> SessionState:
    """Vérifie la session persistée puis charge les données si elle est valide."""
    state = container.auth_service.restore()
    if state == SessionState.AUTHENTICATED:
        try:
            container.data_store.list_all()
        except PharmaError as e:
            logger.warning("Chargement initial interrompu : %s", e)
    return container.auth_service.state


def start_session_restore(container: AppContainer) -> threading.Thread:
    """Lance restore_session en arrière-plan : les pages répondent 202 en attendant."""
    thread = threading.Thread(target=restore_session, args=(container,), name='session-restore', daemon=True)
    thread.start()
    return thread


# ═══════════════════════════════════════════════════════════════════════════
# FABRIQUE D'APPLICATION
# ═══════════════════════════════════════════════════════════════════════════

def create_app(container: AppContainer = None, restore: bool = True) -> Flask:
    """
    Construit l'application Flask.

    Args:
        container: Conteneur de dépendances (un nouveau par défaut)
        restore: Lancer la restauration de session en arrière-plan
    """
    container = container or AppContainer()
    settings = container.settings

    app = Flask(__name__)
    app.config['SECRET_KEY'] = settings.secret_key
    app.extensions['pharma_stock'] = container

    if settings.uses_default_secret:
        logger.warning("PHARMA_SECRET_KEY non défini : clé de développement utilisée")

    # Mesure des temps de réponse (ENABLE_PROFILING)
    init_profiling(app)

    @app.after_request
    def set_security_headers(response):
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['Referrer-Policy'] = 'no-referrer-when-downgrade'
        response.headers['Permissions-Policy'] = 'geolocation=(), microphone=()'
        # HSTS uniquement derrière HTTPS
        if request.is_secure:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'
        return response

    # ═══════════════════════════════════════════════════════════════════════
    # GESTION DES ERREURS
    # ═══════════════════════════════════════════════════════════════════════

    @app.errorhandler(UnauthorizedError)
    def handle_unauthorized(error):
        return redirect(url_for("login"))

    @app.errorhandler(PharmaError)
    def handle_pharma_error(error):
        status = next((code for cls, code in ERROR_STATUS if isinstance(error, cls)), 400)
        body = {"ok": False, "error": error.message}
        if isinstance(error, ValidationError) and error.errors:
            body["errors"] = error.errors
        if status >= 500:
            logger.error("Erreur backend : %s", error.message)
        return body, status

    @app.errorhandler(NotFound)
    def handle_not_found(error):
        return {"ok": False, "error": "Page introuvable"}, 404

    @app.errorhandler(MethodNotAllowed)
    def handle_method_not_allowed(error):
        return {"ok": False, "error": "Méthode non autorisée"}, 405

    # ═══════════════════════════════════════════════════════════════════════
    # AUTHENTIFICATION
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/")
    def index():
        return redirect(url_for("dashboard"))

    @app.route("/login", methods=["GET", "POST"])
    def login():
        auth = _container().auth_service
        if request.method == "GET":
            user = auth.current_user
            return {
                "ok": True,
                "state": auth.state.value,
                "user": user.to_dict() if user else None,
            }

        if auth.state == SessionState.LOADING:
            # Pas de connexion concurrente à la restauration en cours
            return _loading_response()

        data = _payload()
        identifier = (data.get("email") or data.get("identifier") or "").strip()
        password = data.get("password") or ""
        if not identifier or not password:
            return {"ok": False, "error": "Email et mot de passe requis"}, 400

        if not auth.login(identifier, password):
            return {"ok": False, "error": "Identifiants invalides ou serveur injoignable"}, 401

        user = auth.require_user()
        snapshot = _container().data_store.list_all()
        return {
            "ok": True,
            "user": user.to_dict(),
            "load_error": snapshot.error,
            "redirect": url_for("dashboard"),
        }

    @app.route("/logout", methods=["GET", "POST"])
    def logout():
        _container().auth_service.logout()
        return redirect(url_for("login"))

    @app.route("/register", methods=["GET", "POST"])
    def register():
        if request.method == "GET":
            return {"ok": True, "roles": [r.value for r in UserRole]}

        data = _payload()
        try:
            role = UserRole(str(data.get("role") or UserRole.VENDEUR.value).upper())
        except ValueError:
            raise ValidationError(errors={"role": ["Rôle inconnu"]})

        _container().auth_service.register(
            nom=data.get("nom"),
            prenom=data.get("prenom"),
            email=data.get("email"),
            password=data.get("password"),
            password_confirmation=data.get("password_confirmation"),
            badge_id=data.get("badge_id"),
            role=role,
        )
        return {"ok": True, "message": "Compte créé, vous pouvez vous connecter", "redirect": url_for("login")}, 201

    # ═══════════════════════════════════════════════════════════════════════
    # TABLEAU DE BORD
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/dashboard")
    @login_required
    def dashboard():
        container = _container()
        snapshot = container.data_store.snapshot
        return {
            "ok": True,
            "status": snapshot.status.value,
            "error": snapshot.error,
            "user": container.auth_service.require_user().to_dict(),
            "stats": container.stats_service.dashboard(),
        }

    @app.route("/actualiser", methods=["POST"])
    @login_required
    def refresh():
        snapshot = _container().data_store.list_all()
        return {"ok": snapshot.error is None, "status": snapshot.status.value, "error": snapshot.error}

    # ═══════════════════════════════════════════════════════════════════════
    # PRODUITS
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/produits", methods=["GET", "POST"])
    @login_required
    def produits():
        container = _container()
        if request.method == "POST":
            product = container.inventory_service.create_product(_payload())
            return {"ok": True, "produit": product.to_dict()}, 201

        query = request.args.get("q", "")
        products = container.inventory_service.search_by_name(query)
        snapshot = container.data_store.snapshot
        return {
            "ok": True,
            "produits": [p.to_dict() for p in products],
            "categories": [c.to_dict() for c in snapshot.categories],
            "fournisseurs": [s.to_dict() for s in snapshot.suppliers],
        }

    @app.route("/produits/<product_id>", methods=["PUT", "DELETE"])
    @login_required
    def produit(product_id):
        inventory = _container().inventory_service
        if request.method == "DELETE":
            inventory.delete_product(product_id)
            return {"ok": True}
        product = inventory.update_product(product_id, _payload())
        return {"ok": True, "produit": product.to_dict()}

    @app.route("/categories", methods=["POST"])
    @admin_required
    def categories():
        category = _container().inventory_service.create_category(_payload().get("nom"))
        return {"ok": True, "categorie": category.to_dict()}, 201

    # ═══════════════════════════════════════════════════════════════════════
    # VENTES
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/ventes", methods=["GET", "POST"])
    @login_required
    def ventes():
        container = _container()
        if request.method == "POST":
            sale = container.sales_service.create_sale(_payload())
            return {"ok": True, "vente": sale.to_dict()}, 201

        user = container.auth_service.require_user()
        history = container.stats_service.sales_history(user, request.args.get("q", ""))
        in_stock = [p.to_dict() for p in container.data_store.snapshot.products if not p.is_out_of_stock]
        return {"ok": True, "ventes": history["ventes"], "produits_disponibles": in_stock}

    @app.route("/ventes/<sale_id>", methods=["PUT", "DELETE"])
    @login_required
    def vente(sale_id):
        sales = _container().sales_service
        if request.method == "DELETE":
            sales.delete_sale(sale_id)
            return {"ok": True}
        sale = sales.update_sale(sale_id, _payload())
        return {"ok": True, "vente": sale.to_dict()}

    # ═══════════════════════════════════════════════════════════════════════
    # PÉREMPTIONS
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/peremptions")
    @login_required
    def peremptions():
        today = date.today()
        buckets = _container().stats_service.expirations(today)
        return {
            "ok": True,
            "date": today.isoformat(),
            "counts": {
                "expired": len(buckets.expired),
                "expiring_soon": len(buckets.expiring_soon),
                "valid": len(buckets.valid),
            },
            **buckets.to_dict(today),
        }

    # ═══════════════════════════════════════════════════════════════════════
    # DEMANDES DE PRODUITS
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/demandes", methods=["GET", "POST"])
    @login_required
    def demandes():
        container = _container()
        if request.method == "POST":
            product_request = container.request_service.create_request(_payload())
            return {"ok": True, "demande": product_request.to_dict()}, 201

        user = container.auth_service.require_user()
        items = container.request_service.get_requests(None if user.is_admin else user.id)
        return {"ok": True, "demandes": [r.to_dict() for r in items]}

    @app.route("/validation")
    @admin_required
    def validation():
        container = _container()
        pending = container.stats_service.pending_requests(container.data_store.snapshot.product_requests)
        return {"ok": True, "demandes": [r.to_dict() for r in pending]}

    @app.route("/validation/<request_id>", methods=["POST"])
    @admin_required
    def valider_demande(request_id):
        status = str(_payload().get("status") or "").strip().upper()
        if status not in (RequestStatus.APPROVED.value, RequestStatus.REJECTED.value):
            raise ValidationError(errors={"status": ["Statut attendu : VALIDE ou REFUSE"]})
        updated = _container().request_service.set_request_status(request_id, RequestStatus(status))
        return {"ok": True, "demande": updated.to_dict()}

    # ═══════════════════════════════════════════════════════════════════════
    # HISTORIQUE
    # ═══════════════════════════════════════════════════════════════════════

    @app.route("/historique")
    @login_required
    def historique():
        container = _container()
        user = container.auth_service.require_user()
        query = request.args.get("q", "")

        entity = request.args.get("type")
        try:
            entity_type = EntityType(entity) if entity else None
        except ValueError:
            raise ValidationError(errors={"type": [f"Type inconnu : {entity}"]})

        entries = container.history_service.search(query) if query else container.history_service.get_entries()
        if entity_type is not None:
            entries = [e for e in entries if e.entity_type == entity_type]
        if not user.is_admin:
            entries = [e for e in entries if e.user_id == user.id]

        return {
            "ok": True,
            **container.stats_service.sales_history(user, query),
            "activite": [e.to_dict() for e in entries],
        }

    if restore:
        start_session_restore(container)

    return app


if __name__ == "__main__":
    container = AppContainer()
    configure_logging(container.settings.log_level)
    application = create_app(container)
    # En production utiliser WSGI (gunicorn, waitress, ...)
    application.run(
        host=container.settings.host,
        port=container.settings.port,
        debug=container.settings.debug,
        threaded=True,
    )
