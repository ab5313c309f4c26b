# ==============================================================================
# SYSTÈME DE PROFILAGE INTERNE
# ==============================================================================
# Mesure le temps des routes Flask et des appels au backend sans affecter
# l'expérience utilisateur. Les appels lents partent sur le logger
# "pharma_stock.performance".
#
# ACTIVER/DÉSACTIVER : variable d'environnement ENABLE_PROFILING (1/0)
# ==============================================================================

import logging
import os
import re
import threading
import time
from dataclasses import dataclass
from functools import wraps
from typing import Dict

# ═══════════════════════════════════════════════════════════════════════════
# CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════

ENABLE_PROFILING = os.environ.get('ENABLE_PROFILING', '1') == '1'

# Seuils (millisecondes)
THRESHOLD_WARNING = 300
THRESHOLD_CRITICAL = 700

# Libellé des requêtes sans route Flask (404, 405)
UNMATCHED_ROUTE = '<404>'

_NUMERIC_SEGMENT = re.compile(r'/\d+(?=/|$)')

logger = logging.getLogger('pharma_stock.performance')

# Libellés lisibles des routes
ROUTE_NAMES = {
    'POST /login': 'Connexion',
    'POST /logout': 'Déconnexion',
    'POST /register': 'Inscription',
    'GET /dashboard': 'Tableau de bord',
    'POST /actualiser': 'Actualiser les données',
    'GET /produits': 'Voir produits',
    'POST /produits': 'Créer produit',
    'PUT /produits/<product_id>': 'Modifier produit',
    'DELETE /produits/<product_id>': 'Supprimer produit',
    'POST /categories': 'Créer catégorie',
    'GET /ventes': 'Voir ventes',
    'POST /ventes': 'Enregistrer vente',
    'PUT /ventes/<sale_id>': 'Modifier vente',
    'DELETE /ventes/<sale_id>': 'Annuler vente',
    'GET /peremptions': 'Voir péremptions',
    'GET /demandes': 'Voir demandes',
    'POST /demandes': 'Créer demande',
    'GET /validation': 'Voir demandes à valider',
    'POST /validation/<request_id>': 'Valider/refuser demande',
    'GET /historique': 'Voir historique',
}


# ═══════════════════════════════════════════════════════════════════════════
# STATISTIQUES EN MÉMOIRE
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class CallStats:
    """Cumul des mesures d'une fonction ou d'un appel backend."""
    calls: int = 0
    failures: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    def add(self, elapsed_ms: float, failed: bool = False) -> None:
        self.calls += 1
        self.total_ms += elapsed_ms
        self.max_ms = max(self.max_ms, elapsed_ms)
        if failed:
            self.failures += 1

    def to_dict(self) -> Dict[str, float]:
        return {
            'calls': self.calls,
            'failures': self.failures,
            'avg_time': round(self.total_ms / self.calls, 2) if self.calls else 0,
            'max_time': round(self.max_ms, 2),
        }


_stats: Dict[str, CallStats] = {}
_lock = threading.Lock()


def _normalize_path(path: str) -> str:
    """'/users/7?x=1' -> '/users/{id}' : un libellé par ressource, pas par id."""
    return _NUMERIC_SEGMENT.sub('/{id}', path.split('?')[0])


def _measure(label: str, elapsed_ms: float, failed: bool = False) -> None:
    with _lock:
        _stats.setdefault(label, CallStats()).add(elapsed_ms, failed)

    if elapsed_ms >= THRESHOLD_CRITICAL:
        logger.error("TRÈS LENT %s : %.0f ms (seuil %d ms)", label, elapsed_ms, THRESHOLD_CRITICAL)
    elif elapsed_ms >= THRESHOLD_WARNING:
        logger.warning("LENT %s : %.0f ms (seuil %d ms)", label, elapsed_ms, THRESHOLD_WARNING)


# ═══════════════════════════════════════════════════════════════════════════
# 1️⃣ HOOKS FLASK (before/after request)
# ═══════════════════════════════════════════════════════════════════════════

def init_profiling(app):
    """
    Chronomètre chaque requête de l'application Flask.

    Usage :
        from pharma_stock.performance_logger import init_profiling
        init_profiling(app)
    """
    if not ENABLE_PROFILING:
        return

    from flask import g, request

    @app.before_request
    def _start_clock():
        g.profiling_start = time.perf_counter()

    @app.after_request
    def _stop_clock(response):
        started = g.pop('profiling_start', None)
        if started is None:
            return response

        elapsed_ms = (time.perf_counter() - started) * 1000
        # Toutes les URL inconnues partagent un seul libellé
        rule = str(request.url_rule) if request.url_rule else UNMATCHED_ROUTE
        key = f"{request.method} {rule}"
        label = ROUTE_NAMES.get(key, key)

        logger.debug("%s (%s) : %.0f ms -> %s", label, request.path, elapsed_ms, response.status_code)
        _measure(label, elapsed_ms, failed=response.status_code >= 500)
        return response


# ═══════════════════════════════════════════════════════════════════════════
# 2️⃣ DÉCORATEUR POUR LES FONCTIONS CLÉS
# ═══════════════════════════════════════════════════════════════════════════

def profile_function(func=None, name=None):
    """
    Mesure chaque appel d'une fonction critique.

    Usage :
        @profile_function
        def calcul():
            ...

        @profile_function(name="Chargement complet")
        def list_all():
            ...
    """
    def decorator(fn):
        if not ENABLE_PROFILING:
            return fn

        label = name or fn.__qualname__

        @wraps(fn)
        def timed(*args, **kwargs):
            started = time.perf_counter()
            failed = True
            try:
                result = fn(*args, **kwargs)
                failed = False
                return result
            finally:
                _measure(label, (time.perf_counter() - started) * 1000, failed)

        return timed

    # @profile_function sans parenthèses
    return decorator(func) if func is not None else decorator


def record_api_call(method, path, elapsed_ms, status=None):
    """
    Enregistre la durée d'un appel au backend.

    status vaut None quand la requête n'a reçu aucune réponse.
    """
    if not ENABLE_PROFILING:
        return
    label = f"API {method} {_normalize_path(path)}"
    logger.debug("%s : %.0f ms -> %s", label, elapsed_ms, status)
    _measure(label, elapsed_ms, failed=status is None or status >= 500)


# ═══════════════════════════════════════════════════════════════════════════
# 3️⃣ RAPPORT DE STATISTIQUES
# ═══════════════════════════════════════════════════════════════════════════

def get_function_stats():
    """
    Returns:
        dict: {libellé: {calls, failures, avg_time, max_time}}
    """
    with _lock:
        return {label: stats.to_dict() for label, stats in _stats.items()}


def reset_stats():
    with _lock:
        _stats.clear()


__all__ = [
    'ENABLE_PROFILING',
    'CallStats',
    'init_profiling',
    'profile_function',
    'record_api_call',
    'get_function_stats',
    'reset_stats',
]
