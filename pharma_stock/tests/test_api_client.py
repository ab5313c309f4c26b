import pytest
import requests

from conftest import BASE_URL, FakeHttp, FakeResponse
from pharma_stock.api import ApiClient
from pharma_stock.exceptions import (
    DecodeError,
    HttpError,
    InsufficientStockError,
    NetworkError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from pharma_stock.performance_logger import ENABLE_PROFILING, get_function_stats, reset_stats
from pharma_stock.repositories import SessionRepository


@pytest.fixture
def session_repo(tmp_path):
    return SessionRepository(str(tmp_path / 'session.json'))


@pytest.fixture
def calls():
    return []


@pytest.fixture
def client(session_repo, http, calls):
    return ApiClient(BASE_URL, session_repo, timeout=2.0, on_unauthorized=lambda: calls.append('401'), http=http)


def test_bearer_token_is_read_on_every_request(client, session_repo, http):
    http.on('GET', '/produits', FakeResponse(200, []))

    client.get('/produits')
    assert 'Authorization' not in http.calls[-1]['headers']

    session_repo.save_session('tok-1', {'id': '1', 'nom': 'Martin'})
    client.get('/produits')
    assert http.calls[-1]['headers']['Authorization'] == 'Bearer tok-1'

    session_repo.save_session('tok-2', {'id': '1', 'nom': 'Martin'})
    client.get('/produits')
    assert http.calls[-1]['headers']['Authorization'] == 'Bearer tok-2'


def test_json_body_is_sent_and_decoded(client, http):
    http.on('POST', '/ventes', FakeResponse(201, {'id': 9}))
    assert client.post('/ventes', {'produit_id': 1}) == {'id': 9}
    assert http.calls[-1]['json'] == {'produit_id': 1}
    assert http.headers['Accept'] == 'application/json'


def test_empty_body_returns_none(client, http):
    http.on('DELETE', '/ventes/3', FakeResponse(204))
    assert client.delete('/ventes/3') is None


def test_401_clears_session_and_notifies(client, session_repo, http, calls):
    session_repo.save_session('tok-1', {'id': '1', 'nom': 'Martin'})
    http.on('GET', '/ventes', FakeResponse(401, {'message': 'Unauthenticated.'}))

    with pytest.raises(UnauthorizedError):
        client.get('/ventes')

    assert session_repo.get_token() is None
    assert session_repo.get_user() is None
    assert calls == ['401']


def test_401_with_replaced_token_keeps_new_session(client, session_repo, http, calls):
    session_repo.save_session('tok-old', {'id': '2', 'nom': 'Durand'})

    def replaced_then_refused():
        session_repo.save_session('tok-new', {'id': '1', 'nom': 'Martin'})
        return FakeResponse(401, {'message': 'Unauthenticated.'})

    http.request = lambda *args, **kwargs: replaced_then_refused()

    with pytest.raises(UnauthorizedError):
        client.get('/users/2')

    assert session_repo.get_token() == 'tok-new'
    assert calls == []


def test_401_on_login_has_no_side_effect(client, session_repo, http, calls):
    session_repo.save_session('tok-1', {'id': '1', 'nom': 'Martin'})
    http.on('POST', '/login', FakeResponse(401, {'message': 'Identifiants incorrects'}))

    with pytest.raises(UnauthorizedError) as exc:
        client.post('/login', {'email': 'x', 'password': 'y'})

    assert exc.value.message == 'Identifiants incorrects'
    assert session_repo.get_token() == 'tok-1'
    assert calls == []


def test_404_maps_to_not_found(client, http):
    http.on('GET', '/users/42', FakeResponse(404, {'message': 'Not found'}))
    with pytest.raises(NotFoundError):
        client.get('/users/42')


def test_422_surfaces_first_field_error(client, http):
    body = {
        'message': 'The given data was invalid.',
        'errors': {'numero_lot': ['Le numéro de lot est déjà utilisé'], 'nom': ['Nom trop court']},
    }
    http.on('POST', '/produits', FakeResponse(422, body))

    with pytest.raises(ValidationError) as exc:
        client.post('/produits', {})

    assert exc.value.message == 'Le numéro de lot est déjà utilisé'
    assert exc.value.errors['nom'] == ['Nom trop court']


def test_422_without_field_errors_uses_message(client, http):
    http.on('POST', '/register', FakeResponse(422, {'message': 'Email déjà utilisé'}))
    with pytest.raises(ValidationError) as exc:
        client.post('/register', {})
    assert exc.value.message == 'Email déjà utilisé'


def test_stock_rejection_maps_to_insufficient_stock(client, http):
    http.on('POST', '/ventes', FakeResponse(409, {'message': 'Conflit'}))
    with pytest.raises(InsufficientStockError):
        client.post('/ventes', {})

    http.on('POST', '/ventes', FakeResponse(400, {'message': 'Stock insuffisant pour ce produit'}))
    with pytest.raises(InsufficientStockError):
        client.post('/ventes', {})


def test_other_status_maps_to_http_error(client, http):
    http.on('GET', '/produits', FakeResponse(500, text='Server Error'))
    with pytest.raises(HttpError) as exc:
        client.get('/produits')
    assert exc.value.status == 500
    assert exc.value.body == 'Server Error'


def test_invalid_json_maps_to_decode_error(client, http):
    http.on('GET', '/produits', FakeResponse(200, text='<html>'))
    with pytest.raises(DecodeError):
        client.get('/produits')


@pytest.mark.parametrize('failure', [
    requests.exceptions.ConnectionError('refused'),
    requests.exceptions.Timeout('slow'),
])
def test_transport_failure_maps_to_network_error(client, http, failure):
    http.on('GET', '/produits', failure)
    with pytest.raises(NetworkError):
        client.get('/produits')


def test_base_url_and_timeout_come_from_settings(session_repo):
    captured = {}

    class Recorder(FakeHttp):
        def request(self, method, url, **kwargs):
            captured['url'] = url
            captured['timeout'] = kwargs['timeout']
            return FakeResponse(200, [])

    client = ApiClient('http://example.test/api/', session_repo, timeout=7.5, http=Recorder())
    client.get('categories')
    assert captured == {'url': 'http://example.test/api/categories', 'timeout': 7.5}


@pytest.mark.skipif(not ENABLE_PROFILING, reason="profilage désactivé")
def test_calls_are_timed_including_failures(client, http):
    reset_stats()
    http.on('GET', '/produits', FakeResponse(200, []))
    http.on('GET', '/ventes', requests.exceptions.ConnectionError('refused'))

    client.get('/produits')
    with pytest.raises(NetworkError):
        client.get('/ventes')

    stats = get_function_stats()
    assert stats['API GET /produits']['calls'] == 1
    assert stats['API GET /produits']['failures'] == 0
    assert stats['API GET /ventes']['failures'] == 1


@pytest.mark.skipif(not ENABLE_PROFILING, reason="profilage désactivé")
def test_timing_labels_group_ids(client, http):
    reset_stats()
    http.on('GET', '/users/7', FakeResponse(200, {}))
    http.on('GET', '/users/8?actif=1', FakeResponse(200, {}))

    client.get('/users/7')
    client.get('/users/8?actif=1')

    stats = get_function_stats()
    assert stats['API GET /users/{id}']['calls'] == 2
    assert not [label for label in stats if label.endswith(('/7', '/8'))]
