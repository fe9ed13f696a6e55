"""
promo_engine/promotions/repository.py
-------------------------------------
Where promotions come from.

The engine only depends on the PromotionRepository protocol and is handed
a concrete repository by its caller. SqlPromotionRepository is the one
backed by the Flask-SQLAlchemy models; it must be used inside an app
context.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Protocol

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from promo_engine import db
from promo_engine.promotions.domain import Promotion, PromotionKind, PromotionStatus
from promo_engine.promotions.errors import MalformedPromotionError, RepositoryError
from promo_engine.promotions.models import PromotionRecord, PromotionUsage
from promo_engine.promotions.schema import promotion_from_record

logger = logging.getLogger(__name__)


class PromotionRepository(Protocol):
    def list_active(self) -> List[Promotion]: ...

    def find_by_code(self, code: str) -> Optional[Promotion]: ...

    def find_by_id(self, promotion_id: str) -> Optional[Promotion]: ...

    def record_usage(self, promotion_id: str, order_id: str, discount_amount: int,
                     customer_ref: Optional[str] = None) -> None: ...

    def count_customer_usages(self, promotion_id: str, customer_ref: str) -> int: ...


def normalize_records(records: Iterable[dict]) -> List[Promotion]:
    """Convert raw records, dropping (and logging) the ones that don't validate."""
    promotions = []
    for record in records:
        try:
            promotions.append(promotion_from_record(record))
        except MalformedPromotionError as exc:
            logger.warning('Skipping malformed promotion %r: %s', record.get('id'), exc)
    return promotions


class SqlPromotionRepository:
    """PromotionRepository over the promotions / promotion_usages tables."""

    def __init__(self, session=None):
        self.session = session or db.session

    # ── Reads ─────────────────────────────────────────────────────

    def list_active(self) -> List[Promotion]:
        try:
            rows = (self.session.query(PromotionRecord)
                    .filter(PromotionRecord.status == PromotionStatus.ACTIVE.value)
                    .all())
        except SQLAlchemyError as exc:
            raise self._failed('list active promotions', exc)
        return normalize_records(row.to_record() for row in rows)

    def list_all(self, status: Optional[str] = None) -> List[Promotion]:
        try:
            query = self.session.query(PromotionRecord)
            if status:
                query = query.filter(PromotionRecord.status == status)
            rows = query.order_by(PromotionRecord.priority.desc(), PromotionRecord.name).all()
        except SQLAlchemyError as exc:
            raise self._failed('list promotions', exc)
        return normalize_records(row.to_record() for row in rows)

    def find_by_id(self, promotion_id: str) -> Optional[Promotion]:
        try:
            row = self.session.get(PromotionRecord, str(promotion_id))
        except SQLAlchemyError as exc:
            raise self._failed(f'load promotion {promotion_id}', exc)
        if row is None:
            return None
        return promotion_from_record(row.to_record())

    def find_by_code(self, code: str) -> Optional[Promotion]:
        """Active promo_code promotion whose discount.promo_code equals `code` exactly."""
        try:
            rows = (self.session.query(PromotionRecord)
                    .filter(PromotionRecord.kind == PromotionKind.PROMO_CODE.value,
                            PromotionRecord.status == PromotionStatus.ACTIVE.value)
                    .all())
        except SQLAlchemyError as exc:
            raise self._failed('look up promo code', exc)
        for row in rows:
            if row.discount_dict.get('promo_code') != code:
                continue
            try:
                return promotion_from_record(row.to_record())
            except MalformedPromotionError as exc:
                logger.warning('Skipping malformed promotion %r: %s', row.id, exc)
        return None

    def list_usages(self, promotion_id: str) -> List[PromotionUsage]:
        try:
            return (self.session.query(PromotionUsage)
                    .filter(PromotionUsage.promotion_id == str(promotion_id))
                    .order_by(PromotionUsage.applied_at.desc(), PromotionUsage.id.desc())
                    .all())
        except SQLAlchemyError as exc:
            raise self._failed(f'list usages of {promotion_id}', exc)

    def count_customer_usages(self, promotion_id: str, customer_ref: str) -> int:
        try:
            return (self.session.query(PromotionUsage)
                    .filter(PromotionUsage.promotion_id == str(promotion_id),
                            PromotionUsage.customer_ref == customer_ref)
                    .count())
        except SQLAlchemyError as exc:
            raise self._failed(f'count usages of {promotion_id}', exc)

    # ── Writes ────────────────────────────────────────────────────

    def add(self, record: dict) -> Promotion:
        """Validate and store a new promotion record."""
        row       = PromotionRecord.from_record(record)
        promotion = promotion_from_record(row.to_record())   # raises before anything is stored
        try:
            self.session.add(row)
            self.session.commit()
        except SQLAlchemyError as exc:
            raise self._failed('store promotion', exc)
        return promotion

    def set_status(self, promotion_id: str, status: PromotionStatus) -> Optional[Promotion]:
        try:
            row = self.session.get(PromotionRecord, str(promotion_id))
            if row is None:
                return None
            row.status = PromotionStatus(status).value
            self.session.commit()
        except SQLAlchemyError as exc:
            raise self._failed(f'update status of {promotion_id}', exc)
        return promotion_from_record(row.to_record())

    def record_usage(self, promotion_id: str, order_id: str, discount_amount: int,
                     customer_ref: Optional[str] = None) -> None:
        """
        Append a usage row and bump usage_count in one transaction.

        The counter is incremented with UPDATE … SET usage_count = usage_count + 1
        so two concurrent redemptions can't both read the same old value.
        """
        try:
            self.session.add(PromotionUsage(
                promotion_id    = str(promotion_id),
                order_id        = str(order_id),
                customer_ref    = customer_ref,
                discount_amount = int(discount_amount),
            ))
            result = self.session.execute(
                update(PromotionRecord)
                .where(PromotionRecord.id == str(promotion_id))
                .values(usage_count=PromotionRecord.usage_count + 1)
            )
            if result.rowcount == 0:
                self.session.rollback()
                raise RepositoryError(f'Unknown promotion {promotion_id!r}')
            self.session.commit()
        except SQLAlchemyError as exc:
            raise self._failed(f'record usage of {promotion_id}', exc)

    # ── Helpers ───────────────────────────────────────────────────

    def _failed(self, action: str, exc: Exception) -> RepositoryError:
        self.session.rollback()
        logger.error('Could not %s: %s', action, exc)
        return RepositoryError(f'Could not {action}')
