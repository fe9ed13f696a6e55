"""
promo_engine/promotions/__init__.py
-----------------------------------
Promotions blueprint (JSON).
URL prefix: /promotions
"""
from flask import Blueprint

promotions = Blueprint('promotions', __name__)

from promo_engine.promotions import routes  # noqa: E402, F401
from promo_engine.promotions import models  # noqa: E402, F401  (registers tables)
