"""
promo_engine/promotions/calculator.py
-------------------------------------
One pure function per discount variant, plus a dispatch table keyed by
promotion kind.

Every calculator returns a non-negative int that never exceeds the amount
it was computed against. Percentages are rounded half-up to the nearest
currency unit. The pipeline still caps each result at the running total.
"""
from __future__ import annotations

from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict

from promo_engine.promotions.domain import (
    BuyXGetYDiscount, DiscountScope, FixedAmountDiscount, Order,
    PercentageDiscount, Promotion, PromotionKind, ShippingDiscount,
    UnpricedDiscount,
)
from promo_engine.promotions.errors import MalformedPromotionError


UNIT = Decimal('1')   # quantize target: whole currency units


# ── Base amounts ──────────────────────────────────────────────────

def scope_base(order: Order, scope: DiscountScope, product_ids=frozenset(),
               category_ids=frozenset()) -> int:
    """Amount a scoped discount is computed against."""
    if scope is DiscountScope.TOTAL:
        return max(order.total, 0)
    if scope is DiscountScope.PRODUCTS:
        return sum(item.line_total for item in order.items
                   if item.product_id in product_ids)
    if scope is DiscountScope.CATEGORIES:
        return sum(item.line_total for item in order.items
                   if item.category_id is not None and item.category_id in category_ids)
    if scope is DiscountScope.SHIPPING:
        return max(order.shipping_cost, 0)
    raise MalformedPromotionError(f'Unknown discount scope {scope!r}')


# ── Individual handlers ───────────────────────────────────────────

def percentage_discount(order: Order, discount: PercentageDiscount) -> int:
    """value% of the scoped base, optionally capped by max_discount_amount."""
    base   = scope_base(order, discount.scope, discount.product_ids, discount.category_ids)
    amount = (Decimal(base) * discount.value / Decimal('100')).quantize(UNIT, rounding=ROUND_HALF_UP)
    amount = int(amount)
    if discount.max_discount_amount is not None:
        amount = min(amount, discount.max_discount_amount)
    return max(0, min(amount, base))


def fixed_amount_discount(order: Order, discount: FixedAmountDiscount) -> int:
    """Flat amount off, capped at the scoped base."""
    base = scope_base(order, discount.scope, discount.product_ids, discount.category_ids)
    return max(0, min(discount.value, base))


def buy_x_get_y_discount(order: Order, discount: BuyXGetYDiscount) -> int:
    """
    For every (buy + get) units of a configured product, get units are free.
    Example: buy 1 get 1 with 5 units → 2 free.

    Free units are priced at the cheapest line of that product in the order.
    """
    lines = defaultdict(list)
    for item in order.items:
        if item.product_id in discount.product_ids:
            lines[item.product_id].append(item)

    total = 0
    for items in lines.values():
        quantity   = sum(item.quantity for item in items)
        free_units = (quantity // discount.cycle) * discount.get_quantity
        if free_units:
            total += min(item.unit_price for item in items) * free_units
    return total


def free_shipping_discount(order: Order, discount: ShippingDiscount) -> int:
    return max(order.shipping_cost, 0)


# ── Dispatch ──────────────────────────────────────────────────────

def _expect(promotion: Promotion, variant):
    if not isinstance(promotion.discount, variant):
        raise MalformedPromotionError(
            f'{promotion.kind.value} promotion {promotion.id!r} carries '
            f'{type(promotion.discount).__name__}, expected {variant.__name__}',
            promotion_id=promotion.id,
        )
    return promotion.discount


def _percentage(promotion: Promotion, order: Order) -> int:
    return percentage_discount(order, _expect(promotion, PercentageDiscount))


def _fixed_amount(promotion: Promotion, order: Order) -> int:
    return fixed_amount_discount(order, _expect(promotion, FixedAmountDiscount))


def _payout(promotion: Promotion, order: Order) -> int:
    """promo_code, threshold and happy_hour pay out a percentage or a fixed amount."""
    discount = promotion.discount
    if isinstance(discount, PercentageDiscount):
        return percentage_discount(order, discount)
    if isinstance(discount, FixedAmountDiscount):
        return fixed_amount_discount(order, discount)
    return 0


def _buy_x_get_y(promotion: Promotion, order: Order) -> int:
    return buy_x_get_y_discount(order, _expect(promotion, BuyXGetYDiscount))


def _free_shipping(promotion: Promotion, order: Order) -> int:
    return free_shipping_discount(order, _expect(promotion, ShippingDiscount))


def _unpriced(promotion: Promotion, order: Order) -> int:
    # free_product and combo have no pricing rule yet.
    return 0


CALCULATORS: Dict[PromotionKind, Callable[[Promotion, Order], int]] = {
    PromotionKind.PERCENTAGE:    _percentage,
    PromotionKind.FIXED_AMOUNT:  _fixed_amount,
    PromotionKind.PROMO_CODE:    _payout,
    PromotionKind.THRESHOLD:     _payout,
    PromotionKind.HAPPY_HOUR:    _payout,
    PromotionKind.BUY_X_GET_Y:   _buy_x_get_y,
    PromotionKind.FREE_SHIPPING: _free_shipping,
    PromotionKind.FREE_PRODUCT:  _unpriced,
    PromotionKind.COMBO:         _unpriced,
}

_missing = set(PromotionKind) - set(CALCULATORS)
if _missing:
    raise RuntimeError(f'No calculator registered for: {sorted(k.value for k in _missing)}')


def calculate_promotion_discount(promotion: Promotion, order: Order) -> int:
    """
    Discount `promotion` would grant on `order` as it stands.

    Never more than order.total, except for free_shipping, whose amount is
    the shipping cost and is not taken off the item total.

    Raises MalformedPromotionError when the promotion's discount variant
    does not fit its kind.
    """
    if isinstance(promotion.discount, UnpricedDiscount):
        return 0
    amount = CALCULATORS[promotion.kind](promotion, order)
    if promotion.kind is PromotionKind.FREE_SHIPPING:
        return amount
    return min(amount, max(order.total, 0))
