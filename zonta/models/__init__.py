from __future__ import annotations

from zonta.extensions import db

from .mixins import MAX_INT_COLUMN, TimestampMixin, row_id, utcnow
from .order import (
    DONATION_FREQUENCIES,
    DONATION_PURPOSES,
    ORDER_KINDS,
    ORDER_STATUSES,
    Order,
)
from .product import PRODUCT_CATEGORIES, PRODUCT_STATUSES, WEIGHT_UNITS, Product
from .stripe_event import StripeEvent
from .user import User

__all__ = [
    "db",
    "TimestampMixin",
    "utcnow",
    "row_id",
    "MAX_INT_COLUMN",
    "Order",
    "Product",
    "StripeEvent",
    "User",
    "ORDER_KINDS",
    "ORDER_STATUSES",
    "DONATION_PURPOSES",
    "DONATION_FREQUENCIES",
    "PRODUCT_CATEGORIES",
    "PRODUCT_STATUSES",
    "WEIGHT_UNITS",
]
