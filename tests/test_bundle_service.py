import pytest

from crm_console.services.base import RecordNotFound, ValidationFailed


@pytest.fixture
def bundles(services):
    return services.bundles


def test_create_bundle(bundles, make_product):
    a = make_product('A', base_price=100)
    bundle = bundles.create_bundle({
        'name': 'Kit', 'bundle_price': 90,
        'items': [{'product_id': a.id, 'quantity': 2}],
    })

    assert bundle.id
    assert bundle.items[0].product_id == a.id
    assert bundle.items[0].quantity == 2
    assert bundles.get_bundle(bundle.id).items == bundle.items


@pytest.mark.parametrize("payload,error", [
    ({'name': 'Kit', 'items': []}, "At least one item is required"),
    ({'name': '', 'items': [{'product_id': 'p'}]}, "Name is required"),
    ({'name': 'Kit', 'items': [{'product_id': 'p', 'quantity': 0}]}, "Quantity for product 'p' must be at least 1"),
    ({'name': 'Kit', 'items': [{'product_id': 'p'}], 'bundle_price': -5}, "Bundle price must not be negative"),
])
def test_create_rejects(bundles, payload, error):
    with pytest.raises(ValidationFailed) as exc:
        bundles.create_bundle(payload)
    assert error in exc.value.errors


def test_update_replaces_items(bundles, make_product):
    a = make_product('A')
    b = make_product('B')
    bundle = bundles.create_bundle({'name': 'Kit', 'items': [{'product_id': a.id}]})

    updated = bundles.update_bundle(bundle.id, {'items': [{'product_id': b.id, 'quantity': 3}]})

    assert [(i.product_id, i.quantity) for i in updated.items] == [(b.id, 3)]
    assert updated.name == 'Kit'


def test_update_cannot_empty_items(bundles, make_product):
    a = make_product('A')
    bundle = bundles.create_bundle({'name': 'Kit', 'items': [{'product_id': a.id}]})
    with pytest.raises(ValidationFailed):
        bundles.update_bundle(bundle.id, {'items': []})


def test_delete_missing(bundles):
    with pytest.raises(RecordNotFound):
        bundles.delete_bundle('nope')


def test_breakdown(bundles, make_product, catalog):
    a = make_product('A', base_price=100, cost=30)
    b = make_product('B', base_price=50, cost=10)
    bundle = bundles.create_bundle({
        'name': 'Kit', 'bundle_price': 200,
        'items': [
            {'product_id': a.id, 'quantity': 2},
            {'product_id': b.id, 'quantity': 1, 'price_override': 40},
        ],
    })

    breakdown = bundles.breakdown(bundle)

    assert breakdown.list_value == 240.0
    assert breakdown.component_cost == 70.0
    assert breakdown.savings == 40.0
    assert breakdown.savings_percent == pytest.approx(16.6667, rel=1e-4)
    assert breakdown.margin == 130.0
    assert breakdown.margin_percent == 65.0
    assert breakdown.warnings == []

    catalog.update_product(b.id, {'is_active': False})
    catalog.delete_product(a.id)
    breakdown = bundles.breakdown(bundles.get_bundle(bundle.id))
    assert f"Product '{a.id}' not found" in breakdown.warnings
    assert "Product 'B' is inactive" in breakdown.warnings
    assert breakdown.list_value == 40.0
