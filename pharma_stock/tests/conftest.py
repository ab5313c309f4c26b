import json
import threading
from datetime import date, timedelta

import pytest

from pharma_stock.app_container import AppContainer
from pharma_stock.config import Settings

BASE_URL = 'http://backend.test/api'


class FakeResponse:
    """Imite requests.Response pour ce que la passerelle utilise."""

    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        if text is not None:
            self.text = text
        elif body is not None:
            self.text = json.dumps(body)
        else:
            self.text = ''
        self.content = self.text.encode('utf-8')

    def json(self):
        return json.loads(self.text)


class Gate:
    """
    Réponse retenue jusqu'à release() : simule un backend lent.

    `entered` est levé dès qu'une requête atteint la route.
    """

    def __init__(self, response):
        self.response = response
        self.entered = threading.Event()
        self._released = threading.Event()

    def release(self):
        self._released.set()

    def wait(self):
        self.entered.set()
        assert self._released.wait(5), 'réponse jamais libérée'
        return self.response


class FakeHttp:
    """
    Session requests factice.

    Les réponses sont enregistrées par (méthode, chemin). Une liste de
    réponses est consommée dans l'ordre, la dernière reste en place.
    Une exception enregistrée est levée telle quelle ; un Gate retient la
    réponse jusqu'à sa libération.
    """

    def __init__(self):
        self.headers = {}
        self.routes = {}
        self.calls = []
        self._lock = threading.Lock()

    def on(self, method, path, *responses):
        self.routes[(method, path)] = list(responses)
        return self

    def request(self, method, url, json=None, params=None, headers=None, timeout=None):
        path = url[len(BASE_URL):] if url.startswith(BASE_URL) else url
        with self._lock:
            self.calls.append({'method': method, 'path': path, 'json': json, 'headers': dict(headers or {})})
            queue = self.routes.get((method, path))
            if not queue:
                return FakeResponse(404, {'message': f'Route inconnue {method} {path}'})
            response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Gate):
            response = response.wait()
        if isinstance(response, Exception):
            raise response
        return response

    def calls_to(self, method, path):
        return [c for c in self.calls if c['method'] == method and c['path'] == path]


# ==============================================================================
# DONNÉES DU BACKEND
# ==============================================================================

TODAY = date.today()


def api_user(id=1, nom='Martin', prenom='Claire', email='claire@pharma.test', role='ADMIN'):
    return {'id': id, 'nom': nom, 'prenom': prenom, 'email': email, 'role': role, 'badge_id': f'B{id:03d}'}


def api_product(id=1, nom='Doliprane 500', quantite_boites=10, days=200, categorie_id=1, prix='2.50', lot='L001'):
    return {
        'id': id,
        'nom': nom,
        'categorie_id': categorie_id,
        'fournisseur_id': 1,
        'numero_lot': lot,
        'date_peremption': (TODAY + timedelta(days=days)).isoformat() + 'T00:00:00.000000Z',
        'quantite_boites': quantite_boites,
        'quantite_unites': 0,
        'prix': prix,
        'description': '',
    }


def api_sale(id=1, produit_id=1, utilisateur_id=1, quantite=1, days_ago=0):
    return {
        'id': id,
        'produit_id': produit_id,
        'utilisateur_id': utilisateur_id,
        'quantite_vendue': quantite,
        'date_vente': (TODAY - timedelta(days=days_ago)).isoformat(),
    }


def api_request(id=1, produit_id=1, utilisateur_id=2, quantite=5, status='EN_ATTENTE', produit_nom=None):
    return {
        'id': id,
        'produit_id': produit_id,
        'produit_nom': produit_nom,
        'utilisateur_id': utilisateur_id,
        'quantite_demandee': quantite,
        'commentaire': '',
        'status': status,
        'date_creation': TODAY.isoformat(),
    }


ADMIN = api_user(1, 'Martin', 'Claire', 'claire@pharma.test', 'ADMIN')
SELLER = api_user(2, 'Durand', 'Paul', 'paul@pharma.test', 'VENDEUR')


def serve_collections(http, products=None, sales=None, requests=None):
    """Enregistre les six collections chargées par list_all."""
    http.on('GET', '/produits', FakeResponse(200, products if products is not None else [api_product()]))
    http.on('GET', '/ventes', FakeResponse(200, sales if sales is not None else []))
    http.on('GET', '/demandes-produits', FakeResponse(200, requests if requests is not None else []))
    http.on('GET', '/categories', FakeResponse(200, [{'id': 1, 'nom': 'Antalgiques'}, {'id': 2, 'nom': 'Antibiotiques'}]))
    http.on('GET', '/fournisseurs', FakeResponse(200, [{'id': 1, 'nom': 'Sanofi'}]))
    http.on('GET', '/users', FakeResponse(200, [ADMIN, SELLER]))


def login_as(container, http, user=ADMIN):
    http.on('POST', '/login', FakeResponse(200, {'token': f"tok-{user['id']}", 'user': user}))
    assert container.auth_service.login(user['email'], 'secret')


# ==============================================================================
# FIXTURES
# ==============================================================================

@pytest.fixture
def http():
    return FakeHttp()


@pytest.fixture
def settings(tmp_path):
    return Settings(api_url=BASE_URL, data_dir=str(tmp_path), api_timeout=2.0)


@pytest.fixture
def container(settings, http):
    return AppContainer(settings, http=http)


@pytest.fixture
def admin_store(container, http):
    """Conteneur connecté en administrateur, cache chargé."""
    serve_collections(http)
    login_as(container, http, ADMIN)
    container.data_store.list_all()
    return container


@pytest.fixture
def seller_store(container, http):
    serve_collections(http)
    login_as(container, http, SELLER)
    container.data_store.list_all()
    return container
