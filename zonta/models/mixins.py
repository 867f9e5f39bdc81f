# zonta/models/mixins.py
"""Shared SQLAlchemy mixins and time helpers."""

from datetime import datetime, timezone
from typing import Any, Optional

from zonta.extensions import db


def utcnow() -> datetime:
    """Naive UTC timestamp (all DateTime columns are stored naive-UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    """Adds created_at and updated_at columns; ``onupdate`` refreshes updated_at."""

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    updated_at = db.Column(
        db.DateTime,
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
        index=True,
    )


# signed 32-bit INTEGER columns (ids, amounts, quantities, inventory)
MAX_INT_COLUMN = 2_147_483_647


def row_id(raw: Any) -> Optional[int]:
    """Primary key from an ASCII digit string, or None when it cannot name a row."""
    s = str(raw or "").strip()
    if not (s.isascii() and s.isdigit()):
        return None
    n = int(s)
    return n if 0 < n <= MAX_INT_COLUMN else None
