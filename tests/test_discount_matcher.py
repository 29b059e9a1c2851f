from datetime import date

import pytest

from crm_console.engine import DiscountMatcher, Discount, DiscountTier, parse_date


def _discount(**fields):
    fields.setdefault('name', 'Test discount')
    fields.setdefault('id', fields['name'].lower().replace(' ', '-'))
    return Discount(**fields)


def test_percentage_amount():
    assert DiscountMatcher.discount_amount(_discount(type='percentage', value=10), 200) == 20.0


def test_percentage_capped_by_max_discount():
    d = _discount(type='percentage', value=50, max_discount=30)
    assert DiscountMatcher.discount_amount(d, 100) == 30.0


def test_fixed_never_exceeds_amount():
    d = _discount(type='fixed', value=50)
    assert DiscountMatcher.discount_amount(d, 30) == 30.0
    assert DiscountMatcher.discount_amount(d, 80) == 50.0


@pytest.mark.parametrize("amount,expected", [
    (500, 0.0),      # below the first tier
    (1000, 50.0),    # 5% tier, threshold is inclusive
    (6000, 600.0),   # 10% tier
])
def test_tiered_uses_highest_tier_reached(amount, expected):
    d = _discount(type='tiered', tiers=[
        DiscountTier(min_amount=1000, value=5),
        DiscountTier(min_amount=5000, value=10),
    ])
    assert DiscountMatcher.discount_amount(d, amount) == expected


def test_tiered_capped_and_fallback_without_tiers():
    capped = _discount(type='tiered', max_discount=400, tiers=[DiscountTier(min_amount=0, value=10)])
    assert DiscountMatcher.discount_amount(capped, 6000) == 400.0

    no_tiers = _discount(type='tiered', value=10)
    assert DiscountMatcher.discount_amount(no_tiers, 200) == 20.0


def test_date_window_is_inclusive():
    matcher = DiscountMatcher([_discount(value=10, start_date='2026-01-01', end_date='2026-01-31')])

    assert matcher.find_applicable(100, request_date='2026-01-01')
    assert matcher.find_applicable(100, request_date='2026-01-31')
    assert matcher.find_applicable(100, request_date='2025-12-31') == []
    assert matcher.find_applicable(100, request_date='2026-02-01') == []


def test_request_date_with_time_uses_its_date():
    matcher = DiscountMatcher([_discount(value=10, start_date='2026-01-01', end_date='2026-01-31')])

    assert matcher.find_applicable(100, request_date='2026-01-31T09:00:00')
    assert matcher.find_applicable(100, request_date='2026-01-01T23:59:59')
    assert matcher.find_applicable(100, request_date='2026-02-01T00:00:00') == []
    assert matcher.find_applicable(100, request_date=date(2026, 1, 15))


@pytest.mark.parametrize("bad", ['yesterday', '20260131', '2026/01/31', '2026-13-01'])
def test_bad_request_date_raises(bad):
    matcher = DiscountMatcher([_discount(value=10, start_date='2020-01-01', end_date='2030-12-31')])
    with pytest.raises(ValueError):
        matcher.find_applicable(100, request_date=bad)


@pytest.mark.parametrize("value,expected", [
    ('2026-03-09', date(2026, 3, 9)),
    (' 2026-03-09T10:30:00 ', date(2026, 3, 9)),
    (date(2026, 3, 9), date(2026, 3, 9)),
])
def test_parse_date(value, expected):
    assert parse_date(value) == expected


def test_inactive_and_exhausted_do_not_apply():
    matcher = DiscountMatcher([
        _discount(name='Off', value=10, is_active=False),
        _discount(name='Used up', value=10, usage_limit=5, usage_count=5),
    ])
    assert matcher.find_applicable(100) == []


def test_thresholds():
    matcher = DiscountMatcher([_discount(value=10, min_quantity=3, min_amount=500)])

    assert matcher.find_applicable(600, quantity=2) == []
    assert matcher.find_applicable(400, quantity=3) == []
    match = matcher.find_applicable(600, quantity=3)[0]
    assert "qty>=3" in match.match_reason
    assert "amount>=500.00" in match.match_reason


def test_scope_targets():
    matcher = DiscountMatcher([
        _discount(name='Product', value=10, scope='product', product_ids=['p1']),
        _discount(name='Bundle', value=10, scope='bundle', bundle_ids=['b1']),
        _discount(name='Account', value=10, scope='account', account_ids=['acme']),
    ])

    assert [m.discount.name for m in matcher.find_applicable(100, product_id='p1')] == ['Product']
    assert matcher.find_applicable(100, product_id='p2') == []
    assert [m.discount.name for m in matcher.find_applicable(100, bundle_id='b1')] == ['Bundle']
    match = matcher.find_applicable(100, account_id='acme')[0]
    assert match.discount.name == 'Account'
    assert match.match_reason == "account=acme"


def test_global_matches_everything_with_default_reason():
    matcher = DiscountMatcher([_discount(value=10)])
    match = matcher.find_applicable(100, product_id='anything')[0]
    assert match.match_reason == "default"


def test_sorted_largest_first_and_best():
    matcher = DiscountMatcher([
        _discount(name='Five', value=5),
        _discount(name='Ten', value=10),
        _discount(name='Flat', type='fixed', value=7),
    ])

    names = [m.discount.name for m in matcher.find_applicable(100)]
    assert names == ['Ten', 'Flat', 'Five']
    assert matcher.best(amount=100).discount.name == 'Ten'


def test_code_and_scope_filters():
    matcher = DiscountMatcher([
        _discount(name='Coded', value=5, code='SAVE5'),
        _discount(name='Auto', value=10),
        _discount(name='Product', value=20, scope='product', product_ids=['p1']),
    ])

    assert [m.discount.name for m in matcher.find_applicable(100, code='save5')] == ['Coded']
    scoped = matcher.find_applicable(100, product_id='p1', scopes=('global',))
    assert {m.discount.name for m in scoped} == {'Coded', 'Auto'}


def test_best_ignores_zero_amount_matches():
    matcher = DiscountMatcher([
        _discount(type='tiered', tiers=[DiscountTier(min_amount=1000, value=5)]),
    ])
    assert matcher.find_applicable(100)
    assert matcher.best(amount=100) is None
