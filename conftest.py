"""
conftest.py: shared fixtures and builders for the promotion tests.
"""
from datetime import datetime

import pytest

from promo_engine.promotions.domain import Order, OrderItem
from promo_engine.promotions.errors import RepositoryError
from promo_engine.promotions.repository import normalize_records
from promo_engine.promotions.schema import promotion_from_record


# Wednesday 11 June 2025, 18:30
NOW = datetime(2025, 6, 11, 18, 30)


class FakeRepository:
    """In-memory PromotionRepository that records every call."""

    def __init__(self, records=(), fail_list=False, fail_code=False):
        self.promotions = normalize_records(records)
        self.fail_list  = fail_list
        self.fail_code  = fail_code
        self.usages     = []
        self.calls      = []

    def list_active(self):
        self.calls.append('list_active')
        if self.fail_list:
            raise RepositoryError('connection refused')
        return [p for p in self.promotions if p.status.value == 'active']

    def find_by_code(self, code):
        self.calls.append(('find_by_code', code))
        if self.fail_code:
            raise RepositoryError('timeout')
        for p in self.list_active():
            if p.kind.value == 'promo_code' and p.code == code:
                return p
        return None

    def find_by_id(self, promotion_id):
        return next((p for p in self.promotions if p.id == promotion_id), None)

    def record_usage(self, promotion_id, order_id, discount_amount, customer_ref=None):
        self.usages.append((promotion_id, order_id, discount_amount, customer_ref))

    def count_customer_usages(self, promotion_id, customer_ref):
        return sum(1 for u in self.usages if u[0] == promotion_id and u[3] == customer_ref)


def make_promo(id='promo-1', type='percentage', value=10, applies_to='total',
               discount_type=None, conditions=None, **kwargs):
    """Build a Promotion from the stored-record shape, with sensible defaults."""
    discount = {
        'discount_type':  discount_type or type,
        'discount_value': value,
        'applies_to':     applies_to,
    }
    discount.update(kwargs.pop('discount', {}))
    record = {
        'id': id, 'name': kwargs.pop('name', id), 'type': type,
        'status': 'active', 'priority': 0, 'usage_count': 0,
        'conditions': conditions or {}, 'discount': discount,
    }
    record.update(kwargs)
    return record


def promo(**kwargs):
    return promotion_from_record(make_promo(**kwargs))


def make_order(*lines, **kwargs):
    """make_order(('prod-a', 10000, 2), ('prod-b', 25000, 1, 'cat-x'), shipping_cost=8000)"""
    return Order.from_items([OrderItem(*line) for line in lines], **kwargs)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def order_45000():
    """prod-a 2 × 10000 + prod-b 1 × 25000 = 45000"""
    return make_order(('prod-a', 10000, 2, 'tacos'), ('prod-b', 25000, 1, 'drinks'))
