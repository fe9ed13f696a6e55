"""
promo_engine/promotions/usage.py
--------------------------------
Redemption bookkeeping for committed orders.

Never call these from a cart preview: only an order that has actually
been accepted may consume a promotion's usage limit.
"""
from __future__ import annotations

import logging

from promo_engine.promotions.domain import Order

logger = logging.getLogger(__name__)


def record_usages_for_order(repository, order: Order) -> int:
    """
    Log one usage per applied promotion of a committed order.

    Returns the number of usages recorded. RepositoryError propagates: the
    caller decides whether a failed write should fail the commit.
    """
    if not order.applied_promotions:
        return 0
    if not order.order_id:
        raise ValueError('Cannot record promotion usage for an order without order_id.')

    for entry in order.applied_promotions:
        repository.record_usage(
            entry.promotion_id,
            order.order_id,
            entry.discount_amount,
            customer_ref=order.customer_ref,
        )
    logger.info('Recorded %d promotion usage(s) for order %s',
                len(order.applied_promotions), order.order_id)
    return len(order.applied_promotions)


def can_customer_use_promotion(repository, promotion_id: str, customer_ref: str) -> bool:
    """False for unknown promotions; otherwise checks usage_limit_per_customer."""
    promotion = repository.find_by_id(promotion_id)
    if promotion is None:
        return False

    limit = promotion.conditions.usage_limit_per_customer
    if limit is None:
        return True
    return repository.count_customer_usages(promotion_id, customer_ref) < limit
