"""
promo_engine/promotions/domain.py
---------------------------------
Value types the engine works on.

A Promotion carries one discount variant (a tagged union) chosen by its
kind when the record is normalized in schema.py:

  PercentageDiscount   percentage / promo_code / threshold / happy_hour
  FixedAmountDiscount  fixed_amount / promo_code / threshold / happy_hour
  BuyXGetYDiscount     buy_x_get_y
  ShippingDiscount     free_shipping
  UnpricedDiscount     free_product, combo, or a payout type we can't price

Money is always an int in the smallest currency unit.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import FrozenSet, Mapping, Optional, Tuple, Union


class PromotionKind(str, enum.Enum):
    PERCENTAGE    = 'percentage'
    FIXED_AMOUNT  = 'fixed_amount'
    PROMO_CODE    = 'promo_code'
    BUY_X_GET_Y   = 'buy_x_get_y'
    FREE_PRODUCT  = 'free_product'
    FREE_SHIPPING = 'free_shipping'
    COMBO         = 'combo'
    THRESHOLD     = 'threshold'
    HAPPY_HOUR    = 'happy_hour'


class PromotionStatus(str, enum.Enum):
    ACTIVE    = 'active'
    INACTIVE  = 'inactive'
    SCHEDULED = 'scheduled'
    EXPIRED   = 'expired'


class DiscountScope(str, enum.Enum):
    TOTAL      = 'total'
    PRODUCTS   = 'products'
    CATEGORIES = 'categories'
    SHIPPING   = 'shipping'


class OrderType(str, enum.Enum):
    DELIVERY = 'delivery'
    PICKUP   = 'pickup'
    DINE_IN  = 'dine_in'


# ── Conditions ────────────────────────────────────────────────────

@dataclass(frozen=True)
class TimeRange:
    """Minute-of-day window, both ends inclusive. start > end wraps midnight."""
    start_minute: int
    end_minute:   int

    @property
    def wraps_midnight(self) -> bool:
        return self.start_minute > self.end_minute

    def contains(self, minute: int) -> bool:
        if self.wraps_midnight:
            return minute >= self.start_minute or minute <= self.end_minute
        return self.start_minute <= minute <= self.end_minute


@dataclass(frozen=True)
class Conditions:
    min_order_amount:         Optional[int] = None
    max_order_amount:         Optional[int] = None
    min_items_count:          Optional[int] = None
    max_items_count:          Optional[int] = None
    order_types:              FrozenSet[str] = frozenset()
    product_ids:              FrozenSet[str] = frozenset()
    category_ids:             FrozenSet[str] = frozenset()
    days_of_week:             FrozenSet[int] = frozenset()   # 0 = Sunday
    time_range:               Optional[TimeRange] = None
    start_date:               Optional[datetime] = None
    end_date:                 Optional[datetime] = None
    usage_limit:              Optional[int] = None
    usage_limit_per_customer: Optional[int] = None
    first_order_only:         bool = False


# ── Discount variants ─────────────────────────────────────────────

@dataclass(frozen=True)
class PercentageDiscount:
    value:               Decimal
    scope:               DiscountScope = DiscountScope.TOTAL
    product_ids:         FrozenSet[str] = frozenset()
    category_ids:        FrozenSet[str] = frozenset()
    max_discount_amount: Optional[int] = None


@dataclass(frozen=True)
class FixedAmountDiscount:
    value:        int
    scope:        DiscountScope = DiscountScope.TOTAL
    product_ids:  FrozenSet[str] = frozenset()
    category_ids: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class BuyXGetYDiscount:
    product_ids:  FrozenSet[str]
    buy_quantity: int = 1
    get_quantity: int = 1

    @property
    def cycle(self) -> int:
        return self.buy_quantity + self.get_quantity


@dataclass(frozen=True)
class ShippingDiscount:
    pass


@dataclass(frozen=True)
class UnpricedDiscount:
    reason: str = ''


Discount = Union[
    PercentageDiscount,
    FixedAmountDiscount,
    BuyXGetYDiscount,
    ShippingDiscount,
    UnpricedDiscount,
]


@dataclass(frozen=True)
class Promotion:
    """A promotion definition as read for one evaluation."""
    id:          str
    name:        str
    kind:        PromotionKind
    discount:    Discount
    status:      PromotionStatus = PromotionStatus.ACTIVE
    priority:    int = 0
    conditions:  Conditions = field(default_factory=Conditions)
    code:        Optional[str] = None
    usage_count: int = 0
    visuals:     Optional[Mapping] = field(default=None, compare=False)

    @property
    def visual_ref(self) -> Optional[dict]:
        """Display data for badges/banners; banner_image falls back to banner_url."""
        if not self.visuals:
            return None
        ref = dict(self.visuals)
        ref['banner_image'] = ref.get('banner_image') or ref.get('banner_url')
        return ref


# ── Order snapshot ────────────────────────────────────────────────

@dataclass(frozen=True)
class OrderItem:
    product_id:  str
    unit_price:  int
    quantity:    int
    category_id: Optional[str] = None

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class AppliedPromotion:
    """One entry of the audit trail produced by the pipeline."""
    promotion_id:    str
    name:            str
    discount_amount: int
    kind:            PromotionKind
    visual_ref:      Optional[Mapping] = field(default=None, compare=False)
    promo_code:      Optional[str] = None


@dataclass(frozen=True)
class Order:
    items:              Tuple[OrderItem, ...]
    order_type:         str = OrderType.DELIVERY.value
    shipping_cost:      int = 0
    promo_code:         Optional[str] = None
    order_id:           Optional[str] = None
    customer_ref:       Optional[str] = None
    subtotal:           int = 0
    total:              int = 0
    total_discount:     int = 0
    applied_promotions: Tuple[AppliedPromotion, ...] = ()

    @classmethod
    def from_items(cls, items, **kwargs) -> 'Order':
        """Build a fresh snapshot; subtotal and total are taken from the items."""
        items    = tuple(items)
        subtotal = sum(item.line_total for item in items)
        return cls(items=items, subtotal=subtotal, total=subtotal, **kwargs)

    @property
    def items_subtotal(self) -> int:
        return sum(item.line_total for item in self.items)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def waives_shipping(self) -> bool:
        return any(entry.kind is PromotionKind.FREE_SHIPPING
                   for entry in self.applied_promotions)

    @property
    def charged_shipping(self) -> int:
        return 0 if self.waives_shipping else self.shipping_cost

    @property
    def amount_due(self) -> int:
        """Item total after discounts plus whatever shipping is still charged."""
        return self.total + self.charged_shipping

    def with_total(self, total: int) -> 'Order':
        return replace(self, total=total)
