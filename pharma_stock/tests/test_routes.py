"""
Pages Flask : accès, codes HTTP et traduction des erreurs.
"""
import pytest
import requests

from conftest import ADMIN, SELLER, FakeResponse, api_request, login_as, serve_collections
from pharma_stock.main import create_app, restore_session
from pharma_stock.models import EntityType, HistoryAction
from pharma_stock.performance_logger import ENABLE_PROFILING, get_function_stats, reset_stats
from pharma_stock.services import SessionState


@pytest.fixture
def app(container):
    app = create_app(container, restore=False)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def as_admin(container, http, client):
    serve_collections(http)
    login_as(container, http, ADMIN)
    container.data_store.list_all()
    return client


@pytest.fixture
def as_seller(container, http, client):
    serve_collections(http)
    login_as(container, http, SELLER)
    container.data_store.list_all()
    return client


def test_pages_wait_while_session_is_loading(client):
    response = client.get('/dashboard')
    assert response.status_code == 202
    assert response.get_json()['loading'] is True


def test_login_waits_while_session_is_loading(http, client):
    http.on('POST', '/login', FakeResponse(200, {'token': 'tok-1', 'user': ADMIN}))

    response = client.post('/login', json={'email': ADMIN['email'], 'password': 'secret'})

    assert response.status_code == 202
    assert response.get_json()['loading'] is True
    assert http.calls_to('POST', '/login') == []


def test_unauthenticated_is_redirected_to_login(container, client):
    container.auth_service.restore()
    response = client.get('/ventes')
    assert response.status_code == 302
    assert response.headers['Location'].endswith('/login')


def test_login_then_dashboard(container, http, client):
    container.auth_service.restore()
    serve_collections(http)
    http.on('POST', '/login', FakeResponse(200, {'token': 'tok-1', 'user': ADMIN}))

    response = client.post('/login', json={'email': ADMIN['email'], 'password': 'secret'})

    assert response.status_code == 200
    body = response.get_json()
    assert body['user']['role'] == 'ADMIN'
    assert body['load_error'] is None

    stats = client.get('/dashboard').get_json()['stats']
    assert stats['total_produits'] == 1


def test_login_failures(container, http, client):
    container.auth_service.restore()
    assert client.post('/login', data={'email': 'x@pharma.test'}).status_code == 400
    http.on('POST', '/login', FakeResponse(401, {'message': 'Identifiants incorrects'}))
    assert client.post('/login', json={'email': 'x@pharma.test', 'password': 'bad'}).status_code == 401


def test_logout_redirects_and_closes_session(container, as_admin):
    response = as_admin.post('/logout')
    assert response.status_code == 302
    assert container.auth_service.state == SessionState.UNAUTHENTICATED
    assert as_admin.get('/dashboard').status_code == 302


def test_validation_page_is_admin_only(as_seller):
    response = as_seller.get('/validation')
    assert response.status_code == 403
    assert response.get_json() == {'ok': False, 'error': 'Permission refusée'}


def test_oversell_returns_409(as_admin, http):
    response = as_admin.post('/ventes', json={'product_id': '1', 'quantite_vendue': 50})
    assert response.status_code == 409
    assert 'Stock insuffisant' in response.get_json()['error']
    assert http.calls_to('POST', '/ventes') == []


def test_overflowing_quantity_returns_422(as_admin, http):
    response = as_admin.post(
        '/ventes',
        data='{"product_id": "1", "quantite_vendue": 1e400}',
        content_type='application/json',
    )
    assert response.status_code == 422
    assert 'quantite_vendue' in response.get_json()['errors']
    assert http.calls_to('POST', '/ventes') == []


def test_invalid_product_form_returns_422(as_admin):
    response = as_admin.post('/produits', json={'nom': 'Sans catégorie'})
    assert response.status_code == 422
    assert 'categorie' in response.get_json()['errors']


def test_validation_route(container, http, client):
    serve_collections(http, requests=[api_request(1, produit_id=1, quantite=5)])
    login_as(container, http, ADMIN)
    container.data_store.list_all()
    http.on('PUT', '/demandes-produits/1', FakeResponse(200, api_request(1, status='VALIDE')))

    assert client.post('/validation/1', json={'status': 'EN_ATTENTE'}).status_code == 422

    response = client.post('/validation/1', json={'status': 'valide'})
    assert response.status_code == 200
    assert container.data_store.snapshot.find_product('1').quantite_boites == 15

    assert client.post('/validation/1', json={'status': 'REFUSE'}).status_code == 409


def test_backend_down_returns_503(as_admin, http):
    http.on('DELETE', '/produits/1', requests.exceptions.ConnectionError('refused'))
    response = as_admin.delete('/produits/1')
    assert response.status_code == 503


def test_expired_session_during_request_redirects(container, as_admin, http):
    http.on('POST', '/ventes', FakeResponse(401, {'message': 'Unauthenticated.'}))
    response = as_admin.post('/ventes', json={'product_id': '1', 'quantite_vendue': 1})
    assert response.status_code == 302
    assert container.auth_service.state == SessionState.UNAUTHENTICATED


def test_seller_history_only_shows_own_activity(container, http, as_seller):
    http.on('POST', '/ventes', FakeResponse(201, {
        'id': 7, 'produit_id': 1, 'utilisateur_id': 2, 'quantite_vendue': 1, 'date_vente': '2025-01-10',
    }))
    as_seller.post('/ventes', json={'product_id': '1', 'quantite_vendue': 1})
    admin = container.data_store.snapshot.users[0]
    container.history_service.log(
        EntityType.PRODUCT, HistoryAction.UPDATE, admin, '1', 'Doliprane 500', 'Produit modifié'
    )

    body = as_seller.get('/historique').get_json()
    assert [e['user_id'] for e in body['activite']] == ['2']
    assert body['nombre_ventes'] == 1

    assert as_seller.get('/historique?type=inconnu').status_code == 422


def test_unknown_route_and_method(client):
    response = client.get('/nulle-part')
    assert response.status_code == 404
    assert response.get_json()['ok'] is False
    assert client.get('/actualiser').status_code == 405


@pytest.mark.skipif(not ENABLE_PROFILING, reason="profilage désactivé")
def test_unknown_urls_share_one_timing_label(client):
    reset_stats()
    for n in range(50):
        client.get(f'/inconnue-{n}/{n}')

    stats = get_function_stats()
    assert stats['GET <404>']['calls'] == 50
    assert not [label for label in stats if 'inconnue' in label]


def test_security_headers(client):
    response = client.get('/login')
    assert response.headers['X-Frame-Options'] == 'DENY'
    assert response.headers['X-Content-Type-Options'] == 'nosniff'
    assert 'Strict-Transport-Security' not in response.headers


def test_restore_session_loads_data(container, http):
    serve_collections(http)
    container.session_repo.save_session('tok-1', {'id': '1', 'nom': 'Martin', 'email': ADMIN['email']})
    http.on('GET', '/users/1', FakeResponse(200, ADMIN))
    reset_stats()

    assert restore_session(container) == SessionState.AUTHENTICATED
    assert len(container.data_store.snapshot.products) == 1
    if ENABLE_PROFILING:
        assert get_function_stats()['Chargement complet']['calls'] == 1
