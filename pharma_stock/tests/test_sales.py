import pytest

from conftest import SELLER, FakeResponse, api_sale
from pharma_stock.exceptions import (
    InsufficientStockError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from pharma_stock.models import EntityType, HistoryAction


def _stock(container, product_id='1'):
    return container.data_store.snapshot.find_product(product_id).quantite_boites


def test_sale_decrements_stock_and_is_prepended(admin_store, http):
    http.on('POST', '/ventes', FakeResponse(201, api_sale(10, produit_id=1, quantite=3)))

    sale = admin_store.sales_service.create_sale({'product_id': '1', 'quantite_vendue': 3})

    assert _stock(admin_store) == 7
    assert admin_store.data_store.snapshot.sales[0] == sale
    assert sale.product_nom == 'Doliprane 500'
    body = http.calls_to('POST', '/ventes')[0]['json']
    assert body['produit_id'] == 1
    assert body['utilisateur_id'] == 1
    assert body['quantite_vendue'] == 3

    entry = admin_store.history_service.get_entries()[0]
    assert entry.entity_type == EntityType.SALE
    assert entry.action == HistoryAction.CREATE
    assert (entry.quantity_before, entry.quantity_after) == (10, 7)


def test_oversell_is_rejected_before_network(admin_store, http):
    with pytest.raises(InsufficientStockError) as exc:
        admin_store.sales_service.create_sale({'product_id': '1', 'quantite_vendue': 11})

    assert exc.value.requested == 11
    assert exc.value.available == 10
    assert http.calls_to('POST', '/ventes') == []
    assert _stock(admin_store) == 10
    assert admin_store.data_store.snapshot.sales == ()


def test_selling_whole_stock_reaches_zero(admin_store, http):
    http.on('POST', '/ventes', FakeResponse(201, api_sale(10, produit_id=1, quantite=10)))
    admin_store.sales_service.create_sale({'product_id': '1', 'quantite_vendue': 10})
    assert _stock(admin_store) == 0
    assert admin_store.data_store.snapshot.find_product('1').is_out_of_stock


def test_server_stock_rejection_leaves_cache_untouched(admin_store, http):
    http.on('POST', '/ventes', FakeResponse(409, {'message': 'Stock insuffisant'}))

    with pytest.raises(InsufficientStockError):
        admin_store.sales_service.create_sale({'product_id': '1', 'quantite_vendue': 2})

    assert _stock(admin_store) == 10
    assert admin_store.data_store.snapshot.sales == ()
    assert admin_store.history_service.get_entries() == []


@pytest.mark.parametrize('quantity', [0, -2, 'abc', 1e400, float('nan')])
def test_invalid_quantity_is_rejected(admin_store, http, quantity):
    with pytest.raises(ValidationError):
        admin_store.sales_service.create_sale({'product_id': '1', 'quantite_vendue': quantity})
    assert http.calls_to('POST', '/ventes') == []


def test_unknown_product_is_not_found(admin_store):
    with pytest.raises(NotFoundError):
        admin_store.sales_service.create_sale({'product_id': '999', 'quantite_vendue': 1})


def test_update_applies_signed_delta(admin_store, http):
    http.on('POST', '/ventes', FakeResponse(201, api_sale(10, produit_id=1, quantite=3)))
    admin_store.sales_service.create_sale({'product_id': '1', 'quantite_vendue': 3})
    assert _stock(admin_store) == 7

    http.on('PUT', '/ventes/10', FakeResponse(200, api_sale(10, produit_id=1, quantite=5)))
    sale = admin_store.sales_service.update_sale('10', {'quantite_vendue': 5})
    assert sale.quantite_vendue == 5
    assert _stock(admin_store) == 5

    http.on('PUT', '/ventes/10', FakeResponse(200, api_sale(10, produit_id=1, quantite=3)))
    admin_store.sales_service.update_sale('10', {'quantite_vendue': 3})
    assert _stock(admin_store) == 7

    entry = admin_store.history_service.get_entries()[0]
    assert entry.action == HistoryAction.UPDATE
    assert (entry.quantity_before, entry.quantity_after) == (5, 3)


def test_update_beyond_stock_is_rejected_before_network(admin_store, http):
    http.on('POST', '/ventes', FakeResponse(201, api_sale(10, produit_id=1, quantite=3)))
    admin_store.sales_service.create_sale({'product_id': '1', 'quantite_vendue': 3})

    with pytest.raises(InsufficientStockError):
        admin_store.sales_service.update_sale('10', {'quantite_vendue': 11})

    assert http.calls_to('PUT', '/ventes/10') == []
    assert _stock(admin_store) == 7


def test_delete_restores_stock(admin_store, http):
    http.on('POST', '/ventes', FakeResponse(201, api_sale(10, produit_id=1, quantite=4)))
    admin_store.sales_service.create_sale({'product_id': '1', 'quantite_vendue': 4})
    http.on('DELETE', '/ventes/10', FakeResponse(204))

    admin_store.sales_service.delete_sale('10')

    assert _stock(admin_store) == 10
    assert admin_store.data_store.snapshot.sales == ()


def test_seller_can_sell_but_not_edit(seller_store, http):
    http.on('POST', '/ventes', FakeResponse(201, api_sale(10, produit_id=1, utilisateur_id=SELLER['id'], quantite=1)))
    sale = seller_store.sales_service.create_sale({'product_id': '1', 'quantite_vendue': 1})
    assert sale.user_name == 'Paul Durand'

    with pytest.raises(PermissionDeniedError):
        seller_store.sales_service.update_sale('10', {'quantite_vendue': 2})
    with pytest.raises(PermissionDeniedError):
        seller_store.sales_service.delete_sale('10')
    assert http.calls_to('PUT', '/ventes/10') == []
    assert http.calls_to('DELETE', '/ventes/10') == []
