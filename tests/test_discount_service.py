import pytest

from crm_console.engine import Discount, DiscountMatcher
from crm_console.services.base import RecordNotFound, ValidationFailed


@pytest.fixture
def discounts(services):
    return services.discounts


def test_create_uppercases_code_and_resets_usage(discounts):
    d = discounts.create_discount({
        'name': 'Welcome', 'code': ' welcome10 ', 'value': 10, 'usage_count': 99,
    })

    assert d.code == 'WELCOME10'
    assert d.usage_count == 0
    assert discounts.find_by_code('welcome10').id == d.id
    assert discounts.find_by_code('') is None


def test_tiers_sorted_by_threshold(discounts):
    d = discounts.create_discount({
        'name': 'Volume', 'type': 'tiered',
        'tiers': [{'min_amount': 5000, 'value': 10}, {'min_amount': 1000, 'value': 5}],
    })
    assert [t.min_amount for t in d.tiers] == [1000.0, 5000.0]


@pytest.mark.parametrize("payload,error", [
    ({'name': ''}, "Name is required"),
    ({'name': 'X', 'type': 'bogus'}, "Type must be one of: percentage, fixed, tiered"),
    ({'name': 'X', 'scope': 'planet'}, "Scope must be one of: global, product, bundle, account"),
    ({'name': 'X', 'value': 150}, "Percentage value must be between 0 and 100"),
    ({'name': 'X', 'value': -1}, "Value must not be negative"),
    ({'name': 'X', 'type': 'tiered'}, "Tiered discounts need at least one tier"),
    ({'name': 'X', 'scope': 'product'}, "Scope 'product' needs at least one product id"),
    ({'name': 'X', 'start_date': '2026-02-01', 'end_date': '2026-01-01'}, "Start date must be before end date"),
    ({'name': 'X', 'start_date': 'soon'}, "start_date must be YYYY-MM-DD format"),
    ({'name': 'X', 'start_date': '20260101'}, "start_date must be YYYY-MM-DD format"),
    ({'name': 'X', 'end_date': '2026-02-30'}, "end_date must be YYYY-MM-DD format"),
    ({'name': 'X', 'usage_limit': -1}, "usage_limit must not be negative"),
])
def test_validation_errors(discounts, payload, error):
    with pytest.raises(ValidationFailed) as exc:
        discounts.create_discount(payload)
    assert error in exc.value.errors


def test_dates_stored_as_plain_dates_and_matched(discounts):
    d = discounts.create_discount({
        'name': 'Spring', 'value': 10, 'start_date': '2026-01-01T08:00:00', 'end_date': '2026-06-30',
    })
    assert d.start_date == '2026-01-01'

    matcher = DiscountMatcher(discounts.all_discounts())
    assert matcher.find_applicable(100, request_date='2026-06-01')
    assert matcher.find_applicable(100, request_date='2026-06-30T17:00:00')
    assert matcher.find_applicable(100, request_date='2026-07-01') == []


def test_fixed_discount_may_exceed_100(discounts):
    assert discounts.create_discount({'name': 'Big', 'type': 'fixed', 'value': 500}).value == 500.0


def test_validation_warnings(discounts):
    discounts.create_discount({'name': 'First', 'code': 'DUP', 'value': 5})
    d = Discount(**discounts.normalize({
        'name': 'Second', 'code': 'dup', 'value': 5, 'scope': 'product',
        'product_ids': ['ghost'], 'end_date': '2000-01-01',
    }, partial=False))

    result = discounts.validate_discount(d)

    assert result.valid
    assert "Discount has expired (end date is in the past)" in result.warnings
    assert "Product 'ghost' not found in catalog" in result.warnings
    assert "Code 'DUP' is also used by 'First'" in result.warnings


def test_update_is_partial(discounts):
    d = discounts.create_discount({'name': 'Promo', 'code': 'PROMO', 'value': 10})

    updated = discounts.update_discount(d.id, {'value': 15})

    assert updated.value == 15.0
    assert updated.code == 'PROMO'
    assert discounts.get_discount(d.id).value == 15.0


def test_redeem_counts_until_limit(discounts):
    d = discounts.create_discount({'name': 'Limited', 'value': 10, 'usage_limit': 2})

    assert discounts.redeem(d.id).usage_count == 1
    assert discounts.redeem(d.id).usage_count == 2
    with pytest.raises(ValidationFailed, match='usage limit'):
        discounts.redeem(d.id)


def test_redeem_inactive(discounts):
    d = discounts.create_discount({'name': 'Off', 'value': 10, 'is_active': False})
    with pytest.raises(ValidationFailed, match='inactive'):
        discounts.redeem(d.id)


def test_list_filters(discounts):
    discounts.create_discount({'name': 'Pct', 'value': 10})
    discounts.create_discount({'name': 'Flat', 'type': 'fixed', 'value': 5})
    discounts.create_discount({'name': 'Acct', 'value': 5, 'scope': 'account', 'account_ids': ['acme']})

    assert [d.name for d in discounts.list_discounts(type='fixed')] == ['Flat']
    assert [d.name for d in discounts.list_discounts(scope='account')] == ['Acct']
    assert [d.name for d in discounts.list_discounts(sort='name', direction='asc')] == ['Acct', 'Flat', 'Pct']


def test_missing_discount(discounts):
    with pytest.raises(RecordNotFound):
        discounts.get_discount('nope')
    with pytest.raises(RecordNotFound):
        discounts.delete_discount('nope')
