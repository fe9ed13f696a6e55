"""
test_promotion_conditions.py: validity windows, order conditions and
record normalization.
Run: pytest test_promotion_conditions.py -v
"""
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from conftest import NOW, make_order, make_promo, promo
from promo_engine.promotions.domain import (
    BuyXGetYDiscount, Conditions, FixedAmountDiscount, PercentageDiscount,
    PromotionKind, PromotionStatus, ShippingDiscount, TimeRange, UnpricedDiscount,
)
from promo_engine.promotions.errors import MalformedPromotionError
from promo_engine.promotions.matcher import is_applicable_to_order, meets_order_conditions
from promo_engine.promotions.schema import (
    order_from_json, order_to_dict, parse_hhmm, promotion_from_record,
)
from promo_engine.promotions.validity import (
    day_of_week, is_currently_valid, is_valid_at_time,
)


# ── 1. Validity ───────────────────────────────────────────────────

def test_day_of_week_starts_on_sunday():
    assert day_of_week(datetime(2025, 6, 8)) == 0    # Sunday
    assert day_of_week(NOW) == 3                     # Wednesday
    assert day_of_week(datetime(2025, 6, 14)) == 6   # Saturday


@pytest.mark.parametrize('status', ['inactive', 'scheduled', 'expired'])
def test_non_active_status_is_invalid(status):
    assert not is_currently_valid(promo(status=status), NOW)


def test_date_window():
    p = promo(conditions={'start_date': '2025-06-01T00:00:00', 'end_date': '2025-06-30T23:59:59'})
    assert is_currently_valid(p, NOW)
    assert not is_currently_valid(p, datetime(2025, 5, 31, 23, 0))
    assert not is_currently_valid(p, datetime(2025, 7, 1))


def test_date_window_with_aware_now():
    p = promo(conditions={'end_date': '2025-06-10T00:00:00Z'})
    assert not is_currently_valid(p, NOW.replace(tzinfo=timezone.utc))
    assert not is_currently_valid(p, NOW)


def test_usage_limit():
    assert is_currently_valid(promo(usage_count=4, conditions={'usage_limit': 5}), NOW)
    assert not is_currently_valid(promo(usage_count=5, conditions={'usage_limit': 5}), NOW)
    assert not is_currently_valid(promo(conditions={'usage_limit': 0}), NOW)


def test_days_of_week():
    assert is_valid_at_time(promo(conditions={'days_of_week': [1, 2, 3]}), NOW)
    assert not is_valid_at_time(promo(conditions={'days_of_week': [0, 6]}), NOW)


def test_time_range_is_inclusive():
    p = promo(conditions={'time_range': {'start_time': '17:00', 'end_time': '18:30'}})
    assert is_valid_at_time(p, NOW)
    assert is_valid_at_time(p, NOW.replace(hour=17, minute=0))
    assert not is_valid_at_time(p, NOW.replace(hour=18, minute=31))


def test_time_range_wrapping_midnight():
    window = TimeRange(start_minute=parse_hhmm('22:00'), end_minute=parse_hhmm('02:00'))
    assert window.wraps_midnight
    assert window.contains(23 * 60)
    assert window.contains(60)
    assert not window.contains(12 * 60)


def test_validity_checks_are_pure():
    p = promo(conditions={'days_of_week': [3], 'usage_limit': 10})
    assert [is_currently_valid(p, NOW) for _ in range(3)] == [True] * 3
    assert [is_valid_at_time(p, NOW) for _ in range(3)] == [True] * 3
    assert p == promo(conditions={'days_of_week': [3], 'usage_limit': 10})


# ── 2. Order conditions ───────────────────────────────────────────

def test_amount_bounds_use_subtotal(order_45000):
    assert meets_order_conditions(Conditions(min_order_amount=45000), order_45000)
    assert not meets_order_conditions(Conditions(min_order_amount=45001), order_45000)
    assert not meets_order_conditions(Conditions(max_order_amount=44999), order_45000)

    discounted = order_45000.with_total(1000)
    assert meets_order_conditions(Conditions(min_order_amount=45000), discounted)


def test_item_count_bounds(order_45000):
    assert meets_order_conditions(Conditions(min_items_count=3, max_items_count=3), order_45000)
    assert not meets_order_conditions(Conditions(min_items_count=4), order_45000)
    assert not meets_order_conditions(Conditions(max_items_count=2), order_45000)


def test_order_types(order_45000):
    conditions = Conditions(order_types=frozenset({'pickup', 'dine_in'}))
    assert not meets_order_conditions(conditions, order_45000)
    assert meets_order_conditions(conditions, replace(order_45000, order_type='pickup'))


def test_product_and_category_whitelists(order_45000):
    assert meets_order_conditions(Conditions(product_ids=frozenset({'prod-b', 'x'})), order_45000)
    assert not meets_order_conditions(Conditions(product_ids=frozenset({'x'})), order_45000)
    assert meets_order_conditions(Conditions(category_ids=frozenset({'tacos'})), order_45000)
    assert not meets_order_conditions(Conditions(category_ids=frozenset({'desserts'})), order_45000)


def test_first_order_only_is_left_to_the_caller(order_45000):
    assert meets_order_conditions(Conditions(first_order_only=True), order_45000)


def test_applicability_combines_all_checks(order_45000):
    p = promo(conditions={'min_order_amount': 30000, 'days_of_week': [3],
                          'order_types': ['delivery']})
    assert is_applicable_to_order(p, order_45000, NOW)
    assert not is_applicable_to_order(p, order_45000, datetime(2025, 6, 12, 18, 30))
    assert not is_applicable_to_order(replace(p, status=PromotionStatus.INACTIVE), order_45000, NOW)


def test_buy_x_get_y_needs_full_cycle():
    p = promo(type='buy_x_get_y', discount={'buy_x_get_y_config': {
        'product_ids': ['prod-a'], 'buy_quantity': 2, 'get_quantity': 1}})
    assert is_applicable_to_order(p, make_order(('prod-a', 100, 3)), NOW)
    assert not is_applicable_to_order(p, make_order(('prod-a', 100, 2)), NOW)
    assert not is_applicable_to_order(p, make_order(('prod-b', 100, 5)), NOW)


# ── 3. Record normalization ───────────────────────────────────────

def test_kind_selects_discount_variant():
    assert isinstance(promo(type='percentage').discount, PercentageDiscount)
    assert isinstance(promo(type='fixed_amount', value=500).discount, FixedAmountDiscount)
    assert isinstance(promo(type='threshold', discount_type='fixed_amount').discount,
                      FixedAmountDiscount)
    assert isinstance(promo(type='happy_hour', discount_type='percentage').discount,
                      PercentageDiscount)
    assert isinstance(promo(type='free_shipping').discount, ShippingDiscount)
    assert isinstance(promo(type='free_product').discount, UnpricedDiscount)
    bxgy = promo(type='buy_x_get_y', discount={'buy_x_get_y_config': {'product_ids': ['a']}})
    assert bxgy.discount == BuyXGetYDiscount(product_ids=frozenset({'a'}))


def test_record_field_aliases():
    record = make_promo(conditions={'specific_products': ['a'], 'specific_categories': ['c']})
    record['kind'] = record.pop('type')
    p = promotion_from_record(record)
    assert p.kind is PromotionKind.PERCENTAGE
    assert p.conditions.product_ids == frozenset({'a'})
    assert p.conditions.category_ids == frozenset({'c'})


def test_numeric_strings_and_integral_floats_are_accepted():
    p = promo(type='fixed_amount', value='2500', priority=3.0,
              conditions={'min_order_amount': 1000.0})
    assert p.discount.value == 2500
    assert p.priority == 3
    assert p.conditions.min_order_amount == 1000


@pytest.mark.parametrize('record, message', [
    (make_promo(id=''), 'without id'),
    (make_promo(type='mystery'), 'Unknown promotion type'),
    (make_promo(status='paused'), 'Unknown status'),
    (make_promo(type='promo_code', discount_type='percentage'), 'without a code'),
    (make_promo(type='buy_x_get_y'), 'buy_x_get_y_config'),
    (make_promo(type='fixed_amount', value=12.5), 'whole number'),
    (make_promo(value=-5), '>= 0'),
    (make_promo(applies_to='everything'), 'applies_to'),
    (make_promo(conditions={'days_of_week': [7]}), '0-6'),
    (make_promo(conditions={'time_range': {'start_time': '25:00', 'end_time': '02:00'}}), 'HH:MM'),
    (make_promo(conditions={'start_date': 'next tuesday'}), 'ISO 8601'),
    (make_promo(conditions={'usage_limit': True}), 'number'),
])
def test_malformed_records(record, message):
    with pytest.raises(MalformedPromotionError, match=message):
        promotion_from_record(record)


def test_malformed_error_names_the_promotion():
    with pytest.raises(MalformedPromotionError) as excinfo:
        promotion_from_record(make_promo(id='promo-9', conditions={'days_of_week': [9]}))
    assert excinfo.value.promotion_id == 'promo-9'


def test_visual_ref_falls_back_to_banner_url():
    p = promo(visuals={'banner_url': 'https://cdn.example/b.png', 'badge_text': '2x1'})
    assert p.visual_ref['banner_image'] == 'https://cdn.example/b.png'
    assert p.visual_ref['badge_text'] == '2x1'
    assert promo().visual_ref is None


# ── 4. Order payloads ─────────────────────────────────────────────

def test_order_from_json():
    order = order_from_json({
        'order_id': 42, 'order_type': 'pickup', 'shipping_cost': 3000, 'promo_code': 'WELCOME10',
        'items': [{'product_id': 'a', 'unit_price': 1500, 'quantity': 2, 'category_id': 7}],
    })
    assert order.order_id == '42'
    assert order.subtotal == order.total == 3000
    assert order.items[0].category_id == '7'
    assert order.promo_code == 'WELCOME10'


@pytest.mark.parametrize('payload', [
    [],
    {'items': [{'product_id': 'a', 'quantity': 1}]},
    {'items': [{'product_id': 'a', 'unit_price': -1, 'quantity': 1}]},
    {'items': [{'product_id': 'a', 'unit_price': 100, 'quantity': 0}]},
    {'items': [], 'shipping_cost': 'lots'},
    {'items': [], 'shipping_cost': -10},
    {'items': [{'product_id': 'a', 'unit_price': 299.99, 'quantity': 1}]},
    {'items': [{'product_id': 'a', 'unit_price': 300, 'quantity': 1.9}]},
    {'items': [{'product_id': 'a', 'unit_price': True, 'quantity': 1}]},
    {'items': [{'product_id': 'a', 'unit_price': '12.50', 'quantity': 1}]},
    {'items': [], 'shipping_cost': 4999.5},
])
def test_order_from_json_rejects_bad_payloads(payload):
    with pytest.raises(ValueError):
        order_from_json(payload)


def test_order_to_dict_reports_amount_due():
    order = make_order(('a', 1000, 2), shipping_cost=500)
    data  = order_to_dict(order)
    assert data['subtotal'] == 2000
    assert data['charged_shipping'] == 500
    assert data['amount_due'] == 2500
    assert data['applied_promotions'] == []
