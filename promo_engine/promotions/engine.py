"""
promo_engine/promotions/engine.py
---------------------------------
Promotion application pipeline.

Runs the active promotions against an order snapshot in four fixed stages:

  1. buy_x_get_y          every applicable one, highest priority first
  2. promo code           the single promotion behind order.promo_code
  3. percentage pool      percentage / fixed_amount / threshold / happy_hour,
                          highest priority first
  4. free_shipping        the first applicable one, recorded only

Each discount is computed against the running total left by the previous
ones and capped at it before being committed, so the item total never goes
negative. The running total is threaded through the stages as a Ledger
value; the caller's Order is never mutated.

Only reads happen here. Recording usage for a committed order is the
caller's job (see usage.py).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from promo_engine.promotions.calculator import calculate_promotion_discount
from promo_engine.promotions.domain import (
    AppliedPromotion, Order, Promotion, PromotionKind,
)
from promo_engine.promotions.errors import MalformedPromotionError, RepositoryError
from promo_engine.promotions.matcher import is_applicable_to_order

logger = logging.getLogger(__name__)


POOL_KINDS = frozenset({
    PromotionKind.PERCENTAGE,
    PromotionKind.FIXED_AMOUNT,
    PromotionKind.THRESHOLD,
    PromotionKind.HAPPY_HOUR,
})


@dataclass(frozen=True)
class Ledger:
    """Running state of one pipeline run."""
    running_total: int
    applied:       Tuple[AppliedPromotion, ...] = ()
    item_discount: int = 0   # excludes free-shipping entries

    def commit(self, promotion: Promotion, discount: int) -> 'Ledger':
        """Subtract `discount` (capped at the running total) and record it."""
        capped = min(discount, self.running_total)
        if capped <= 0:
            return self
        return Ledger(
            running_total = self.running_total - capped,
            applied       = self.applied + (_entry(promotion, capped),),
            item_discount = self.item_discount + capped,
        )

    def record(self, promotion: Promotion, discount: int) -> 'Ledger':
        """Record an entry without touching the item total (free shipping)."""
        if discount <= 0:
            return self
        return replace(self, applied=self.applied + (_entry(promotion, discount),))

    def view(self, order: Order) -> Order:
        """The order as the next calculator should see it."""
        return replace(order, total=self.running_total,
                       total_discount=self.item_discount,
                       applied_promotions=self.applied)


def _entry(promotion: Promotion, amount: int) -> AppliedPromotion:
    return AppliedPromotion(
        promotion_id    = promotion.id,
        name            = promotion.name,
        discount_amount = amount,
        kind            = promotion.kind,
        visual_ref      = promotion.visual_ref,
        promo_code      = promotion.code,
    )


def _discount_or_skip(promotion: Promotion, order: Order) -> int:
    try:
        return calculate_promotion_discount(promotion, order)
    except MalformedPromotionError as exc:
        logger.warning('Skipping promotion %r: %s', promotion.id, exc)
        return 0


def _by_priority(promotions: Iterable[Promotion]) -> List[Promotion]:
    # sorted() is stable: equal priorities keep repository order.
    return sorted(promotions, key=lambda p: p.priority, reverse=True)


# ── Stages ────────────────────────────────────────────────────────

def _apply_sequentially(candidates: Iterable[Promotion], order: Order,
                        ledger: Ledger, now: datetime) -> Ledger:
    for promotion in _by_priority(candidates):
        view = ledger.view(order)
        if not is_applicable_to_order(promotion, view, now):
            continue
        ledger = ledger.commit(promotion, _discount_or_skip(promotion, view))
    return ledger


def apply_buy_x_get_y_stage(promotions: Iterable[Promotion], order: Order,
                            ledger: Ledger, now: datetime) -> Ledger:
    candidates = [p for p in promotions if p.kind is PromotionKind.BUY_X_GET_Y]
    return _apply_sequentially(candidates, order, ledger, now)


def apply_promo_code_stage(promotion: Optional[Promotion], order: Order,
                           ledger: Ledger, now: datetime) -> Ledger:
    if promotion is None:
        return ledger
    return _apply_sequentially([promotion], order, ledger, now)


def apply_pool_stage(promotions: Iterable[Promotion], order: Order,
                     ledger: Ledger, now: datetime) -> Ledger:
    candidates = [p for p in promotions if p.kind in POOL_KINDS]
    return _apply_sequentially(candidates, order, ledger, now)


def apply_free_shipping_stage(promotions: Iterable[Promotion], order: Order,
                              ledger: Ledger, now: datetime) -> Ledger:
    view = ledger.view(order)
    for promotion in promotions:
        if promotion.kind is not PromotionKind.FREE_SHIPPING:
            continue
        if is_applicable_to_order(promotion, view, now):
            return ledger.record(promotion, _discount_or_skip(promotion, view))
    return ledger


# ── Main public function ──────────────────────────────────────────

def _lookup_code(repository, code: Optional[str]) -> Optional[Promotion]:
    if not code:
        return None
    try:
        return repository.find_by_code(code)
    except RepositoryError as exc:
        logger.warning('Promo code lookup failed for %r: %s', code, exc)
        return None
    except MalformedPromotionError as exc:
        logger.warning('Skipping malformed promotion behind code %r: %s', code, exc)
        return None


def evaluate(order: Order, active: Iterable[Promotion], code_promotion: Optional[Promotion],
             now: datetime) -> Order:
    """Run the four stages over already-fetched promotions."""
    active   = list(active)
    subtotal = order.items_subtotal
    order    = replace(order, subtotal=subtotal, total=subtotal,
                       total_discount=0, applied_promotions=())

    ledger = Ledger(running_total=subtotal)
    ledger = apply_buy_x_get_y_stage(active, order, ledger, now)
    ledger = apply_promo_code_stage(code_promotion, order, ledger, now)
    ledger = apply_pool_stage(active, order, ledger, now)
    ledger = apply_free_shipping_stage(active, order, ledger, now)

    return replace(order,
                   total=subtotal - ledger.item_discount,
                   total_discount=ledger.item_discount,
                   applied_promotions=ledger.applied)


def apply_promotions_to_order(order: Order, repository, now: Optional[datetime] = None) -> Order:
    """
    Apply every applicable promotion to `order` and return the annotated copy.

    If the active promotions can't be fetched, `order` is returned unchanged:
    a failed lookup must never block checkout.

    total_discount sums the entries that reduce the item total. A
    free_shipping entry is recorded for display; its presence tells the
    caller to waive the shipping fee (Order.charged_shipping does this).
    """
    now = now or datetime.now()
    try:
        active = repository.list_active()
    except RepositoryError as exc:
        logger.warning('Could not fetch active promotions, order left undiscounted: %s', exc)
        return order

    result = evaluate(order, active, _lookup_code(repository, order.promo_code), now)
    logger.info('Applied %d promotion(s) to order %s: discount %d, total %d',
                len(result.applied_promotions), order.order_id or '-',
                result.total_discount, result.total)
    return result
