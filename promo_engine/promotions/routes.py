"""
promo_engine/promotions/routes.py
---------------------------------
JSON endpoints used by checkout and by the admin promo tester.

Previews never write: usage is only recorded through POST /usages, once
the caller has committed the order.
"""
from dataclasses import replace
from datetime import datetime
from zoneinfo import ZoneInfo

from flask import abort, current_app, jsonify, request

from promo_engine.promotions import promotions
from promo_engine.promotions.calculator import calculate_promotion_discount
from promo_engine.promotions.domain import AppliedPromotion, PromotionKind, PromotionStatus
from promo_engine.promotions.engine import apply_promotions_to_order
from promo_engine.promotions.errors import MalformedPromotionError, RepositoryError
from promo_engine.promotions.matcher import is_applicable_to_order
from promo_engine.promotions.repository import SqlPromotionRepository
from promo_engine.promotions.schema import (
    order_from_json, order_to_dict, promotion_to_dict,
)
from promo_engine.promotions.usage import (
    can_customer_use_promotion, record_usages_for_order,
)


# ── Helpers ───────────────────────────────────────────────────────

def _now() -> datetime:
    """Current wall-clock time in the shop's zone (PROMOTIONS_TIMEZONE)."""
    return datetime.now(ZoneInfo(current_app.config.get('PROMOTIONS_TIMEZONE', 'UTC')))


def _error(message: str, status: int):
    return jsonify({'error': message}), status


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description='Request body must be a JSON object.')
    return data


@promotions.errorhandler(RepositoryError)
def repository_unavailable(exc):
    current_app.logger.error(f'Promotion store unavailable: {exc}')
    return _error('Promotion store unavailable, try again later.', 503)


@promotions.errorhandler(MalformedPromotionError)
def malformed_promotion(exc):
    current_app.logger.warning(f'Malformed promotion {exc.promotion_id}: {exc}')
    return _error(f'Promotion {exc.promotion_id} is misconfigured: {exc}', 422)


# ── List ──────────────────────────────────────────────────────────

@promotions.route('/')
def index():
    status = request.args.get('status') or None
    if status and status not in {s.value for s in PromotionStatus}:
        return _error(f'Unknown status "{status}".', 400)
    rows = SqlPromotionRepository().list_all(status=status)
    return jsonify([promotion_to_dict(p) for p in rows])


# ── Preview (cart / promo tester) ────────────────────────────────

@promotions.route('/preview', methods=['POST'])
def preview():
    """Apply every applicable promotion to the posted order and return the totals."""
    try:
        order = order_from_json(_json_body())
    except ValueError as exc:
        return _error(str(exc), 400)

    result = apply_promotions_to_order(order, SqlPromotionRepository(), now=_now())
    return jsonify(order_to_dict(result))


@promotions.route('/check', methods=['POST'])
def check():
    """
    Inspect a single promotion against an order, e.g. to explain why a
    code didn't apply. Body: {"promotion_id" | "code", "order": {...}}.
    """
    data = _json_body()
    try:
        order = order_from_json(data.get('order') or {})
    except ValueError as exc:
        return _error(str(exc), 400)

    repo = SqlPromotionRepository()
    if data.get('code'):
        promotion = repo.find_by_code(str(data['code']))
    elif data.get('promotion_id'):
        promotion = repo.find_by_id(str(data['promotion_id']))
    else:
        return _error('Provide "code" or "promotion_id".', 400)

    if promotion is None:
        return _error('Promotion not found or not active.', 404)

    applicable = is_applicable_to_order(promotion, order, _now())
    try:
        discount = calculate_promotion_discount(promotion, order) if applicable else 0
    except MalformedPromotionError as exc:
        current_app.logger.warning(f'Promotion {promotion.id} cannot be priced: {exc}')
        applicable, discount = False, 0

    return jsonify({
        'promotion':  promotion_to_dict(promotion),
        'applicable': applicable,
        'discount':   discount,
    })


# ── Status ────────────────────────────────────────────────────────

@promotions.route('/<promotion_id>/status', methods=['POST'])
def set_status(promotion_id):
    status = _json_body().get('status')
    try:
        status = PromotionStatus(status)
    except ValueError:
        return _error(f'Unknown status "{status}".', 400)

    promotion = SqlPromotionRepository().set_status(promotion_id, status)
    if promotion is None:
        return _error('Promotion not found.', 404)
    current_app.logger.info(f'Promotion {promotion_id} is now {status.value}')
    return jsonify(promotion_to_dict(promotion))


# ── Usage ─────────────────────────────────────────────────────────

@promotions.route('/usages', methods=['POST'])
def record_usages():
    """
    Record redemptions for a committed order.
    Body: {"order_id", "customer_ref", "applied_promotions": [{"promotion_id",
    "discount_amount", "type"}]}, i.e. the applied list returned by /preview.
    """
    data = _json_body()
    try:
        order = order_from_json({
            'order_id':     data.get('order_id'),
            'customer_ref': data.get('customer_ref'),
        })
        applied = tuple(
            AppliedPromotion(
                promotion_id    = str(entry['promotion_id']),
                name            = str(entry.get('name') or entry['promotion_id']),
                discount_amount = int(entry['discount_amount']),
                kind            = PromotionKind(entry.get('type', PromotionKind.PERCENTAGE.value)),
            )
            for entry in data.get('applied_promotions') or []
        )
    except (KeyError, TypeError, ValueError) as exc:
        return _error(f'Invalid usage payload: {exc}', 400)

    if not order.order_id:
        return _error('order_id is required.', 400)

    order    = replace(order, applied_promotions=applied)
    recorded = record_usages_for_order(SqlPromotionRepository(), order)
    return jsonify({'recorded': recorded}), 201


@promotions.route('/<promotion_id>/usages')
def usages(promotion_id):
    repo = SqlPromotionRepository()
    if repo.find_by_id(promotion_id) is None:
        return _error('Promotion not found.', 404)
    return jsonify([u.to_dict() for u in repo.list_usages(promotion_id)])


@promotions.route('/<promotion_id>/eligibility')
def eligibility(promotion_id):
    customer = request.args.get('customer', '').strip()
    if not customer:
        return _error('customer query parameter is required.', 400)
    allowed = can_customer_use_promotion(SqlPromotionRepository(), promotion_id, customer)
    return jsonify({'promotion_id': promotion_id, 'customer': customer, 'allowed': allowed})
