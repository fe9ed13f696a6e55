"""
promo_engine/promotions/matcher.py
----------------------------------
Decides whether a promotion's conditions are met by a given order.

Amount thresholds are compared against order.subtotal (pre-discount) so
that the outcome does not depend on which promotions ran earlier.
"""
from __future__ import annotations

from datetime import datetime

from promo_engine.promotions.domain import (
    BuyXGetYDiscount, Conditions, Order, Promotion, PromotionKind,
)
from promo_engine.promotions.validity import is_currently_valid, is_valid_at_time


def meets_order_conditions(conditions: Conditions, order: Order) -> bool:
    """Check every order-level condition; an absent condition always passes."""
    subtotal = order.subtotal
    if conditions.min_order_amount is not None and subtotal < conditions.min_order_amount:
        return False
    if conditions.max_order_amount is not None and subtotal > conditions.max_order_amount:
        return False

    count = order.item_count
    if conditions.min_items_count is not None and count < conditions.min_items_count:
        return False
    if conditions.max_items_count is not None and count > conditions.max_items_count:
        return False

    if conditions.order_types and order.order_type not in conditions.order_types:
        return False

    if conditions.product_ids and not any(
            item.product_id in conditions.product_ids for item in order.items):
        return False
    if conditions.category_ids and not any(
            item.category_id in conditions.category_ids for item in order.items):
        return False

    # first_order_only needs the customer's order history, which lives
    # outside the engine; callers that care must filter before calling.
    return True


def _buy_x_get_y_reachable(promotion: Promotion, order: Order) -> bool:
    """At least one full buy+get cycle of the configured products is in the order."""
    discount = promotion.discount
    if not isinstance(discount, BuyXGetYDiscount) or not discount.product_ids:
        return False
    quantity = sum(item.quantity for item in order.items
                   if item.product_id in discount.product_ids)
    return quantity >= discount.cycle


def is_applicable_to_order(promotion: Promotion, order: Order, now: datetime) -> bool:
    if not is_currently_valid(promotion, now):
        return False
    if not is_valid_at_time(promotion, now):
        return False
    if not meets_order_conditions(promotion.conditions, order):
        return False
    if promotion.kind is PromotionKind.BUY_X_GET_Y:
        return _buy_x_get_y_reachable(promotion, order)
    return True
