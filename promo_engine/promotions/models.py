"""
promo_engine/promotions/models.py
---------------------------------
PromotionRecord and PromotionUsage models.

conditions, discount and visuals are JSON-encoded text columns whose shape
is documented in schema.py. Rows are converted to engine values through
to_record() → schema.promotion_from_record().
"""
import json
import uuid
from datetime import datetime

from promo_engine import db


class PromotionRecord(db.Model):
    """A stored promotion definition."""
    __tablename__ = 'promotions'

    id          = db.Column(db.String(36),  primary_key=True)
    name        = db.Column(db.String(200), nullable=False)
    kind        = db.Column(db.String(30),  nullable=False, index=True)   # PromotionKind value
    status      = db.Column(db.String(20),  nullable=False, default='active', index=True)
    priority    = db.Column(db.Integer,     nullable=False, default=0)
    conditions  = db.Column(db.Text,        nullable=False, default='{}')   # JSON string
    discount    = db.Column(db.Text,        nullable=False, default='{}')   # JSON string
    visuals     = db.Column(db.Text,        nullable=True)                  # JSON string
    usage_count = db.Column(db.Integer,     nullable=False, default=0)
    created_at  = db.Column(db.DateTime,    nullable=False, default=datetime.utcnow)
    updated_at  = db.Column(db.DateTime,    nullable=False, default=datetime.utcnow,
                            onupdate=datetime.utcnow)

    usages      = db.relationship('PromotionUsage', backref='promotion', lazy='dynamic',
                                  cascade='all, delete-orphan')

    __table_args__ = (
        db.CheckConstraint('usage_count >= 0', name='check_usage_count_non_negative'),
    )

    # ── JSON helpers ──────────────────────────────────────────────

    @staticmethod
    def _load(raw) -> dict:
        try:
            value = json.loads(raw or '{}')
        except (ValueError, TypeError):
            return {}
        return value if isinstance(value, dict) else {}

    @property
    def conditions_dict(self) -> dict:
        return self._load(self.conditions)

    @property
    def discount_dict(self) -> dict:
        return self._load(self.discount)

    @property
    def visuals_dict(self) -> dict:
        return self._load(self.visuals)

    # ── Conversion ────────────────────────────────────────────────

    def to_record(self) -> dict:
        return {
            'id':          self.id,
            'name':        self.name,
            'type':        self.kind,
            'status':      self.status,
            'priority':    self.priority if self.priority is not None else 0,
            'conditions':  self.conditions_dict,
            'discount':    self.discount_dict,
            'visuals':     self.visuals_dict or None,
            'usage_count': self.usage_count or 0,
        }

    @classmethod
    def from_record(cls, record: dict) -> 'PromotionRecord':
        visuals = record.get('visuals')
        return cls(
            id          = str(record.get('id') or uuid.uuid4()),
            name        = (record.get('name') or '').strip(),
            kind        = record.get('type') or record.get('kind'),
            status      = record.get('status', 'active'),
            priority    = record.get('priority', 0),
            conditions  = json.dumps(record.get('conditions') or {}),
            discount    = json.dumps(record.get('discount') or {}),
            visuals     = json.dumps(visuals) if visuals else None,
            usage_count = record.get('usage_count', 0),
        )

    def __repr__(self):
        return f'<PromotionRecord {self.name!r} {self.kind} {self.status}>'


class PromotionUsage(db.Model):
    """
    One redemption of a promotion by a committed order.
    Append-only: rows are never updated.
    """
    __tablename__ = 'promotion_usages'

    id              = db.Column(db.Integer, primary_key=True)
    promotion_id    = db.Column(db.String(36), db.ForeignKey('promotions.id'),
                                nullable=False, index=True)
    order_id        = db.Column(db.String(64), nullable=False, index=True)
    customer_ref    = db.Column(db.String(64), nullable=True, index=True)   # e.g. phone number
    discount_amount = db.Column(db.Integer,    nullable=False)
    applied_at      = db.Column(db.DateTime,   nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            'id':              self.id,
            'promotion_id':    self.promotion_id,
            'order_id':        self.order_id,
            'customer_ref':    self.customer_ref,
            'discount_amount': self.discount_amount,
            'applied_at':      self.applied_at.isoformat() if self.applied_at else None,
        }

    def __repr__(self):
        return f'<PromotionUsage promo={self.promotion_id} order={self.order_id} disc={self.discount_amount}>'
