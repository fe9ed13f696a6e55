"""
promo_engine/promotions/validity.py
-----------------------------------
Order-independent eligibility checks.

Both functions are pure: same promotion + same `now` → same answer.
"""
from __future__ import annotations

from datetime import datetime

from promo_engine.promotions.domain import Promotion, PromotionStatus


def day_of_week(now: datetime) -> int:
    """0 = Sunday … 6 = Saturday (the convention stored in days_of_week)."""
    return (now.weekday() + 1) % 7


def minute_of_day(now: datetime) -> int:
    return now.hour * 60 + now.minute


def _align(moment: datetime, now: datetime) -> datetime:
    # Naive bounds are read in the caller's zone; aware bounds vs naive now drop tz.
    if moment.tzinfo is None and now.tzinfo is not None:
        return moment.replace(tzinfo=now.tzinfo)
    if moment.tzinfo is not None and now.tzinfo is None:
        return moment.replace(tzinfo=None)
    return moment


def is_currently_valid(promotion: Promotion, now: datetime) -> bool:
    """True if the promotion is active, inside its date window and under its usage limit."""
    if promotion.status is not PromotionStatus.ACTIVE:
        return False

    cond = promotion.conditions
    if cond.start_date is not None and now < _align(cond.start_date, now):
        return False
    if cond.end_date is not None and now > _align(cond.end_date, now):
        return False
    if cond.usage_limit is not None and promotion.usage_count >= cond.usage_limit:
        return False
    return True


def is_valid_at_time(promotion: Promotion, now: datetime) -> bool:
    """True if `now` falls on an allowed weekday and inside the time-of-day range."""
    cond = promotion.conditions
    if cond.days_of_week and day_of_week(now) not in cond.days_of_week:
        return False
    if cond.time_range is not None and not cond.time_range.contains(minute_of_day(now)):
        return False
    return True
