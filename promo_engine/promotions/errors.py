"""
promo_engine/promotions/errors.py
---------------------------------
Exceptions raised by the promotion engine and its repositories.
"""


class PromotionError(Exception):
    """Base class for promotion engine errors."""


class RepositoryError(PromotionError):
    """The promotion store could not be read or written."""


class MalformedPromotionError(PromotionError):
    """A promotion record cannot be evaluated (missing or invalid fields)."""

    def __init__(self, message: str, promotion_id=None):
        super().__init__(message)
        self.promotion_id = promotion_id
