"""
promo_engine/promotions/schema.py
---------------------------------
Conversion between JSON-shaped records and the engine's value types.

Promotion records keep the stored field names:

    {
        "id": "…", "name": "…", "type": "percentage", "status": "active",
        "priority": 10, "usage_count": 0,
        "conditions": {"min_order_amount": 30000, "time_range":
                       {"start_time": "17:00", "end_time": "19:00"}, …},
        "discount":   {"discount_type": "percentage", "discount_value": 10,
                       "applies_to": "total", "max_discount_amount": 2000,
                       "promo_code": "…", "buy_x_get_y_config": {…}},
        "visuals":    {"banner_url": "…", "badge_text": "…"}
    }

Anything that can't be evaluated raises MalformedPromotionError here,
so the engine itself only ever sees well-formed promotions.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from promo_engine.promotions.domain import (
    AppliedPromotion, BuyXGetYDiscount, Conditions, DiscountScope,
    FixedAmountDiscount, Order, OrderItem, PercentageDiscount, Promotion,
    PromotionKind, PromotionStatus, ShippingDiscount, TimeRange,
    UnpricedDiscount,
)
from promo_engine.promotions.errors import MalformedPromotionError


PAYOUT_KINDS = (PromotionKind.PROMO_CODE, PromotionKind.THRESHOLD, PromotionKind.HAPPY_HOUR)


# ── Field helpers ─────────────────────────────────────────────────

def _int(value, field_name: str, minimum: int = 0) -> int:
    """Whole number >= minimum; integral floats and numeric strings are accepted."""
    if isinstance(value, bool):
        raise MalformedPromotionError(f'{field_name} must be a number')
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise MalformedPromotionError(f'{field_name} must be a number')
    if not number.is_finite() or number != number.to_integral_value():
        raise MalformedPromotionError(f'{field_name} must be a whole number')
    if number < minimum:
        raise MalformedPromotionError(f'{field_name} must be >= {minimum}')
    return int(number)


def _opt_int(data: dict, key: str, minimum: int = 0) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    return _int(value, key, minimum)


def _ids(values) -> frozenset:
    if not values:
        return frozenset()
    if isinstance(values, (str, bytes)):
        raise MalformedPromotionError('id lists must be arrays')
    return frozenset(str(v) for v in values)


def parse_hhmm(value: str) -> int:
    """'HH:MM' → minute of day. Seconds, if present, are ignored."""
    try:
        parts  = str(value).split(':')
        hours  = int(parts[0])
        minute = int(parts[1])
    except (ValueError, IndexError):
        raise MalformedPromotionError(f'Invalid time {value!r}, expected HH:MM')
    if not (0 <= hours <= 23 and 0 <= minute <= 59):
        raise MalformedPromotionError(f'Invalid time {value!r}, expected HH:MM')
    return hours * 60 + minute


def parse_datetime(value) -> Optional[datetime]:
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise MalformedPromotionError(f'Invalid date {value!r}, expected ISO 8601')


def _enum(enum_cls, value, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise MalformedPromotionError(f'Unknown {field_name} {value!r}')


# ── Conditions ────────────────────────────────────────────────────

def conditions_from_record(data: Optional[dict]) -> Conditions:
    data = data or {}

    time_range = None
    raw_range  = data.get('time_range')
    if raw_range:
        if not isinstance(raw_range, dict):
            raise MalformedPromotionError('time_range must have start_time and end_time')
        time_range = TimeRange(
            start_minute=parse_hhmm(raw_range.get('start_time')),
            end_minute=parse_hhmm(raw_range.get('end_time')),
        )

    days = set()
    for day in data.get('days_of_week') or ():
        day = _int(day, 'days_of_week')
        if day > 6:
            raise MalformedPromotionError('days_of_week entries must be 0-6')
        days.add(day)

    return Conditions(
        min_order_amount         = _opt_int(data, 'min_order_amount'),
        max_order_amount         = _opt_int(data, 'max_order_amount'),
        min_items_count          = _opt_int(data, 'min_items_count'),
        max_items_count          = _opt_int(data, 'max_items_count'),
        order_types              = _ids(data.get('order_types')),
        product_ids              = _ids(data.get('product_ids') or data.get('specific_products')),
        category_ids             = _ids(data.get('category_ids') or data.get('specific_categories')),
        days_of_week             = frozenset(days),
        time_range               = time_range,
        start_date               = parse_datetime(data.get('start_date')),
        end_date                 = parse_datetime(data.get('end_date')),
        usage_limit              = _opt_int(data, 'usage_limit'),
        usage_limit_per_customer = _opt_int(data, 'usage_limit_per_customer'),
        first_order_only         = bool(data.get('first_order_only', False)),
    )


# ── Discount variants ─────────────────────────────────────────────

def _percentage(data: dict) -> PercentageDiscount:
    try:
        value = Decimal(str(data.get('discount_value', 0)))
    except InvalidOperation:
        raise MalformedPromotionError('discount_value must be a number')
    if not value.is_finite() or value < 0:
        raise MalformedPromotionError('discount_value must be >= 0')
    return PercentageDiscount(
        value               = value,
        scope               = _enum(DiscountScope, data.get('applies_to', 'total'), 'applies_to'),
        product_ids         = _ids(data.get('product_ids')),
        category_ids        = _ids(data.get('category_ids')),
        max_discount_amount = _opt_int(data, 'max_discount_amount'),
    )


def _fixed_amount(data: dict) -> FixedAmountDiscount:
    return FixedAmountDiscount(
        value        = _int(data.get('discount_value', 0), 'discount_value'),
        scope        = _enum(DiscountScope, data.get('applies_to', 'total'), 'applies_to'),
        product_ids  = _ids(data.get('product_ids')),
        category_ids = _ids(data.get('category_ids')),
    )


def _buy_x_get_y(data: dict) -> BuyXGetYDiscount:
    config = data.get('buy_x_get_y_config')
    if not config or not isinstance(config, dict):
        raise MalformedPromotionError('buy_x_get_y promotion without buy_x_get_y_config')
    product_ids = _ids(config.get('product_ids') or data.get('product_ids'))
    if not product_ids:
        raise MalformedPromotionError('buy_x_get_y_config.product_ids is required')
    return BuyXGetYDiscount(
        product_ids  = product_ids,
        buy_quantity = _int(config.get('buy_quantity', 1), 'buy_quantity', minimum=1),
        get_quantity = _int(config.get('get_quantity', 1), 'get_quantity', minimum=1),
    )


def discount_from_record(kind: PromotionKind, data: Optional[dict]):
    """Pick the discount variant for `kind`."""
    data = data or {}

    if kind is PromotionKind.PERCENTAGE:
        return _percentage(data)
    if kind is PromotionKind.FIXED_AMOUNT:
        return _fixed_amount(data)
    if kind in PAYOUT_KINDS:
        discount_type = data.get('discount_type')
        if discount_type == 'percentage':
            return _percentage(data)
        if discount_type == 'fixed_amount':
            return _fixed_amount(data)
        return UnpricedDiscount(reason=f'unsupported discount_type {discount_type!r}')
    if kind is PromotionKind.BUY_X_GET_Y:
        return _buy_x_get_y(data)
    if kind is PromotionKind.FREE_SHIPPING:
        return ShippingDiscount()
    return UnpricedDiscount(reason=f'{kind.value} has no pricing rule')


# ── Promotion ─────────────────────────────────────────────────────

def promotion_from_record(record: dict) -> Promotion:
    if not record.get('id'):
        raise MalformedPromotionError('Promotion record without id')
    promotion_id = str(record['id'])

    try:
        kind     = _enum(PromotionKind, record.get('type') or record.get('kind'), 'promotion type')
        discount = record.get('discount') or {}
        if not isinstance(discount, dict) or not isinstance(record.get('conditions') or {}, dict):
            raise MalformedPromotionError('discount and conditions must be objects')
        code     = discount.get('promo_code') or None
        if kind is PromotionKind.PROMO_CODE and not code:
            raise MalformedPromotionError('promo_code promotion without a code')

        return Promotion(
            id          = promotion_id,
            name        = str(record.get('name') or promotion_id),
            kind        = kind,
            discount    = discount_from_record(kind, discount),
            status      = _enum(PromotionStatus, record.get('status', 'active'), 'status'),
            priority    = _int(record.get('priority', 0), 'priority', minimum=-(2 ** 31)),
            conditions  = conditions_from_record(record.get('conditions')),
            code        = code,
            usage_count = _int(record.get('usage_count', 0), 'usage_count'),
            visuals     = record.get('visuals') or None,
        )
    except MalformedPromotionError as exc:
        if exc.promotion_id is None:
            exc.promotion_id = promotion_id
        raise


def promotion_to_dict(promotion: Promotion) -> dict:
    cond = promotion.conditions
    return {
        'id':          promotion.id,
        'name':        promotion.name,
        'type':        promotion.kind.value,
        'status':      promotion.status.value,
        'priority':    promotion.priority,
        'usage_count': promotion.usage_count,
        'promo_code':  promotion.code,
        'usage_limit': cond.usage_limit,
        'start_date':  cond.start_date.isoformat() if cond.start_date else None,
        'end_date':    cond.end_date.isoformat() if cond.end_date else None,
        'visuals':     promotion.visual_ref,
    }


# ── Orders ────────────────────────────────────────────────────────

def _whole_number(value) -> Optional[int]:
    """int for whole numbers (integral floats and numeric strings too), else None."""
    try:
        return _int(value, 'value', minimum=-(2 ** 63))
    except MalformedPromotionError:
        return None


def order_from_json(data: dict) -> Order:
    """
    Build an Order snapshot from a request body.
    Raises ValueError with a readable message on bad input.
    """
    if not isinstance(data, dict):
        raise ValueError('Order must be a JSON object.')

    items = []
    for index, raw in enumerate(data.get('items') or []):
        try:
            product_id = str(raw['product_id'])
            unit_price = _whole_number(raw['unit_price'])
            quantity   = _whole_number(raw['quantity'])
        except (KeyError, TypeError):
            raise ValueError(f'Item {index}: product_id, unit_price and quantity are required.')
        if unit_price is None or quantity is None:
            raise ValueError(f'Item {index}: unit_price and quantity must be whole numbers.')
        if unit_price < 0:
            raise ValueError(f'Item {index}: unit_price cannot be negative.')
        if quantity < 1:
            raise ValueError(f'Item {index}: quantity must be at least 1.')
        category_id = raw.get('category_id')
        items.append(OrderItem(
            product_id  = product_id,
            unit_price  = unit_price,
            quantity    = quantity,
            category_id = str(category_id) if category_id is not None else None,
        ))

    shipping_cost = _whole_number(data.get('shipping_cost') or 0)
    if shipping_cost is None:
        raise ValueError('shipping_cost must be a whole number.')
    if shipping_cost < 0:
        raise ValueError('shipping_cost cannot be negative.')

    return Order.from_items(
        items,
        order_type    = str(data.get('order_type') or 'delivery'),
        shipping_cost = shipping_cost,
        promo_code    = data.get('promo_code') or None,
        order_id      = str(data['order_id']) if data.get('order_id') else None,
        customer_ref  = data.get('customer_ref') or None,
    )


def applied_to_dict(entry: AppliedPromotion) -> dict:
    return {
        'promotion_id':    entry.promotion_id,
        'name':            entry.name,
        'discount_amount': entry.discount_amount,
        'type':            entry.kind.value,
        'promo_code':      entry.promo_code,
        'visuals':         dict(entry.visual_ref) if entry.visual_ref else None,
    }


def order_to_dict(order: Order) -> dict:
    return {
        'order_id':           order.order_id,
        'subtotal':           order.subtotal,
        'total_discount':     order.total_discount,
        'total':              order.total,
        'shipping_cost':      order.shipping_cost,
        'charged_shipping':   order.charged_shipping,
        'amount_due':         order.amount_due,
        'applied_promotions': [applied_to_dict(e) for e in order.applied_promotions],
    }
