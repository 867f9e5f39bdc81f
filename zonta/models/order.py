from __future__ import annotations

# -----------------------------------------------------------------------------
# Order Model
# One row per purchasable intent: a donation or a shop order.
# Cents-based; status moves pending -> completed/failed exactly once.
# -----------------------------------------------------------------------------
import uuid as _uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from zonta.extensions import db

from .mixins import TimestampMixin

ORDER_KINDS = ("donation", "product")
ORDER_STATUSES = ("pending", "completed", "failed", "refunded")

DONATION_PURPOSES = ("General Fund", "Scholarships", "Community Programs", "Advocacy", "Other")
DONATION_FREQUENCIES = ("one-time", "monthly", "yearly")


def _in_clause(column: str, values: tuple) -> str:
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


class Order(db.Model, TimestampMixin):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_orders_amount_positive"),
        CheckConstraint("quantity >= 1", name="ck_orders_quantity_min"),
        CheckConstraint(_in_clause("kind", ORDER_KINDS), name="ck_orders_kind_enum"),
        CheckConstraint(_in_clause("status", ORDER_STATUSES), name="ck_orders_status_enum"),
        CheckConstraint(
            "(status = 'completed') = (completed_at IS NOT NULL)",
            name="ck_orders_completed_at_iff_completed",
        ),
        Index("ix_orders_status_created", "status", "created_at"),
        Index("ix_orders_kind_status", "kind", "status"),
    )

    # ---- Identifiers ----
    id: Mapped[int] = mapped_column(primary_key=True)
    uuid: Mapped[str] = mapped_column(
        db.String(36),
        unique=True,
        nullable=False,
        default=lambda: str(_uuid.uuid4()),
        index=True,
        doc="Public-safe unique identifier.",
    )
    kind: Mapped[str] = mapped_column(db.String(20), nullable=False, index=True, doc="donation | product")

    # ---- Financials (cents) ----
    amount_cents: Mapped[int] = mapped_column(db.Integer, nullable=False, doc="Order total in cents")
    currency: Mapped[str] = mapped_column(db.String(3), nullable=False, default="usd")

    # ---- Identity ----
    name: Mapped[str] = mapped_column(db.String(160), nullable=False)
    email: Mapped[str] = mapped_column(db.String(160), nullable=False, index=True)
    phone: Mapped[Optional[str]] = mapped_column(db.String(40), nullable=True)

    # ---- Donation details ----
    purpose: Mapped[Optional[str]] = mapped_column(db.String(60), nullable=True, index=True)
    custom_purpose: Mapped[Optional[str]] = mapped_column(db.String(160), nullable=True)
    message: Mapped[Optional[str]] = mapped_column(db.String(500), nullable=True)
    is_anonymous: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    is_recurring: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    frequency: Mapped[str] = mapped_column(db.String(20), nullable=False, default="one-time")

    # ---- Product details ----
    product_id: Mapped[Optional[int]] = mapped_column(
        db.ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    product: Mapped[Optional["Product"]] = relationship("Product", lazy="joined")  # noqa: F821
    quantity: Mapped[int] = mapped_column(db.Integer, nullable=False, default=1)
    unit_amount_cents: Mapped[Optional[int]] = mapped_column(db.Integer, nullable=True)

    # ---- Payment tracking (Stripe) ----
    stripe_session_id: Mapped[Optional[str]] = mapped_column(
        db.String(255),
        nullable=True,
        unique=True,
        index=True,
        doc="Stripe Checkout Session id (cs_...). Set once the session exists.",
    )
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(
        db.String(255),
        nullable=True,
        index=True,
        doc="Stripe PaymentIntent id (pi_...). Set on completion.",
    )
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(db.String(255), nullable=True)

    status: Mapped[str] = mapped_column(db.String(20), nullable=False, default="pending", index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(db.DateTime, nullable=True)
    receipt_sent: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)

    # ==========================================================
    # Computed Properties
    # ==========================================================
    @property
    def amount_dollars(self) -> float:
        return round((self.amount_cents or 0) / 100.0, 2)

    @property
    def formatted_amount(self) -> str:
        return f"${self.amount_dollars:,.2f}"

    @property
    def purpose_label(self) -> str:
        if self.purpose == "Other" and self.custom_purpose:
            return self.custom_purpose
        return self.purpose or "General Fund"

    @property
    def display_name(self) -> str:
        return "Anonymous" if self.is_anonymous else self.name

    # ==========================================================
    # Serialization
    # ==========================================================
    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "uuid": self.uuid,
            "kind": self.kind,
            "status": self.status,
            "amountCents": int(self.amount_cents or 0),
            "amount": self.amount_dollars,
            "currency": self.currency,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "sessionId": self.stripe_session_id,
            "paymentIntentId": self.stripe_payment_intent_id,
            "customerId": self.stripe_customer_id,
            "receiptSent": bool(self.receipt_sent),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
        }
        if self.kind == "donation":
            data.update(
                {
                    "purpose": self.purpose,
                    "customPurpose": self.custom_purpose,
                    "message": self.message,
                    "isAnonymous": bool(self.is_anonymous),
                    "isRecurring": bool(self.is_recurring),
                    "frequency": self.frequency,
                }
            )
        else:
            data.update(
                {
                    "productId": self.product_id,
                    "productName": self.product.name if self.product else None,
                    "quantity": int(self.quantity or 1),
                    "unitAmountCents": self.unit_amount_cents,
                }
            )
        return data

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Order {self.id} {self.kind} {self.formatted_amount} status={self.status}>"
