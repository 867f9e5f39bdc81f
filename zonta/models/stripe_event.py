from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, mapped_column

from zonta.extensions import db
from zonta.models.mixins import TimestampMixin


class StripeEvent(db.Model, TimestampMixin):
    """Audit row for every verified webhook event (unique per Stripe event id)."""

    __tablename__ = "stripe_events"
    __table_args__ = (
        Index("ix_stripe_events_type_created", "type", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    event_id: Mapped[str] = mapped_column(
        db.String(120),
        unique=True,
        index=True,
        nullable=False,
        doc="Stripe event id (evt_...)",
    )

    type: Mapped[str] = mapped_column(
        db.String(120),
        index=True,
        nullable=False,
        doc="Stripe event type (checkout.session.completed, etc)",
    )

    livemode: Mapped[bool] = mapped_column(
        db.Boolean,
        nullable=False,
        default=False,
    )

    object_id: Mapped[Optional[str]] = mapped_column(
        db.String(255),
        nullable=True,
        index=True,
        doc="Session id (cs_...) or PaymentIntent id (pi_...)",
    )

    order_id: Mapped[Optional[int]] = mapped_column(
        db.ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        doc="Order this event was matched to, if any",
    )

    outcome: Mapped[str] = mapped_column(
        db.String(40),
        nullable=False,
        default="ignored",
        doc="applied | duplicate | unmatched | ignored | awaiting_payment",
    )

    payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(db.JSON, nullable=True)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<StripeEvent {self.event_id} {self.type} {self.outcome}>"
