from decimal import Decimal

import pytest

from conftest import TODAY, FakeResponse, api_product
from pharma_stock.exceptions import HttpError, NotFoundError, PermissionDeniedError, ValidationError
from pharma_stock.models import EntityType, HistoryAction

NEW_PRODUCT = {
    'nom': 'Amoxicilline 1g',
    'categorie': 'antibiotiques',
    'numero_lot': 'A-2291',
    'date_peremption': TODAY.isoformat(),
    'quantite_boites': '12',
    'prix': '8,40',
    'fournisseur': 'Sanofi',
}


@pytest.mark.parametrize('missing', ['nom', 'categorie', 'numero_lot'])
def test_required_fields_are_checked_before_network(admin_store, http, missing):
    data = dict(NEW_PRODUCT, **{missing: '  '})

    with pytest.raises(ValidationError) as exc:
        admin_store.inventory_service.create_product(data)

    assert missing in exc.value.errors
    assert http.calls_to('POST', '/produits') == []


def test_create_resolves_category_and_appends(admin_store, http):
    created = api_product(5, 'Amoxicilline 1g', quantite_boites=12, categorie_id=2, prix='8.40', lot='A-2291')
    http.on('POST', '/produits', FakeResponse(201, created))

    product = admin_store.inventory_service.create_product(NEW_PRODUCT)

    body = http.calls_to('POST', '/produits')[0]['json']
    assert body['categorie_id'] == 2
    assert body['fournisseur_id'] == 1
    assert body['prix'] == '8.40'
    assert body['quantite_boites'] == 12
    assert product.id == '5'
    assert product.categorie == 'Antibiotiques'
    assert admin_store.data_store.snapshot.products[-1] == product

    entry = admin_store.history_service.get_entries()[0]
    assert (entry.entity_type, entry.action) == (EntityType.PRODUCT, HistoryAction.CREATE)


def test_unknown_category_is_rejected(admin_store, http):
    with pytest.raises(ValidationError):
        admin_store.inventory_service.create_product(dict(NEW_PRODUCT, categorie='Homéopathie'))
    assert http.calls_to('POST', '/produits') == []


def test_negative_quantity_is_rejected(admin_store):
    with pytest.raises(ValidationError):
        admin_store.inventory_service.create_product(dict(NEW_PRODUCT, quantite_boites=-1))


def test_server_validation_error_surfaces_first_message(admin_store, http):
    http.on('POST', '/produits', FakeResponse(422, {
        'message': 'The given data was invalid.',
        'errors': {'numero_lot': ['Ce numéro de lot existe déjà']},
    }))

    with pytest.raises(ValidationError) as exc:
        admin_store.inventory_service.create_product(NEW_PRODUCT)

    assert exc.value.message == 'Ce numéro de lot existe déjà'
    assert len(admin_store.data_store.snapshot.products) == 1


def test_update_replaces_cached_product(admin_store, http):
    http.on('PUT', '/produits/1', FakeResponse(200, api_product(1, 'Doliprane 500', quantite_boites=25, prix='2.80')))

    product = admin_store.inventory_service.update_product('1', {'quantite_boites': 25, 'prix': '2.80'})

    assert product.quantite_boites == 25
    assert product.prix == Decimal('2.80')
    assert admin_store.data_store.snapshot.find_product('1') == product
    entry = admin_store.history_service.get_entries()[0]
    assert (entry.quantity_before, entry.quantity_after) == (10, 25)


def test_update_with_empty_response_merges_locally(admin_store, http):
    http.on('PUT', '/produits/1', FakeResponse(204))
    product = admin_store.inventory_service.update_product('1', {'description': 'Boîte de 16'})
    assert product.description == 'Boîte de 16'
    assert product.quantite_boites == 10


def test_delete_removes_after_confirmation(admin_store, http):
    http.on('DELETE', '/produits/1', FakeResponse(500, {'message': 'Erreur'}))
    with pytest.raises(HttpError):
        admin_store.inventory_service.delete_product('1')
    assert admin_store.data_store.snapshot.find_product('1') is not None

    http.on('DELETE', '/produits/1', FakeResponse(204))
    admin_store.inventory_service.delete_product('1')
    assert admin_store.data_store.snapshot.find_product('1') is None


def test_unknown_product_is_not_found(admin_store):
    with pytest.raises(NotFoundError):
        admin_store.inventory_service.update_product('404', {'nom': 'X'})


def test_seller_cannot_manage_catalog(seller_store, http):
    with pytest.raises(PermissionDeniedError):
        seller_store.inventory_service.create_product(NEW_PRODUCT)
    with pytest.raises(PermissionDeniedError):
        seller_store.inventory_service.delete_product('1')
    assert http.calls_to('POST', '/produits') == []


def test_create_category(admin_store, http):
    http.on('POST', '/categories', FakeResponse(201, {'id': 3, 'nom': 'Vitamines'}))
    category = admin_store.inventory_service.create_category('Vitamines')
    assert category.id == '3'
    assert admin_store.data_store.snapshot.find_category('vitamines') == category

    with pytest.raises(ValidationError):
        admin_store.inventory_service.create_category('Vitamines')
