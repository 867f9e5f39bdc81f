#!/usr/bin/env python3
"""
Order lifecycle (donations + shop orders) on top of Stripe Checkout.

Flow:
  1) initiate_*      -> Order row committed as "pending"
  2)                 -> gateway checkout session created (metadata.order_id)
  3)                 -> session id attached to the still-pending order
  4) webhook         -> signature verified on the raw body, event parsed,
                        pending -> completed | failed via compare-and-set

Only step 4 moves an order out of "pending", and only with
``UPDATE ... WHERE status = 'pending'``; a duplicate or late delivery
matches zero rows and changes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from sqlalchemy import select, update as sa_update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from zonta.errors import (
    DependencyError,
    NotFoundError,
    StockUnavailableError,
    ValidationError,
)
from zonta.extensions import db
from zonta.models import (
    DONATION_FREQUENCIES,
    DONATION_PURPOSES,
    MAX_INT_COLUMN,
    Order,
    Product,
    StripeEvent,
    row_id,
    utcnow,
)
from zonta.services.events import (
    CheckoutCompleted,
    CheckoutExpired,
    CheckoutPaymentFailed,
    PaymentFailed,
    WebhookEvent,
    parse_event,
)
from zonta.services.gateway import LineItem, PaymentGateway

log = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on", "y"}


# ----------------------------
# Small utilities
# ----------------------------
def _truthy(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    return str(v).strip().lower() in _TRUTHY


def _is_email(s: str) -> bool:
    s = (s or "").strip()
    return ("@" in s) and ("." in s.split("@")[-1])


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if data.get(k) is not None:
            return data.get(k)
    return None


def _clean(v: Any, limit: int) -> str:
    return str(v or "").strip()[:limit]


def parse_amount_cents(data: Mapping[str, Any]) -> int:
    """
    ``amount_cents``/``amountCents`` are integer minor units; legacy
    ``amount`` is decimal dollars, rounded half-up to the cent.
    """
    cents_raw = _first(data, "amount_cents", "amountCents")
    if cents_raw is not None:
        if isinstance(cents_raw, bool):
            raise ValidationError("amount_cents must be an integer", field="amount_cents")
        try:
            cents = int(str(cents_raw).strip())
        except ValueError:
            raise ValidationError("amount_cents must be an integer", field="amount_cents") from None
    else:
        raw = _first(data, "amount", "amount_dollars", "amountDollars")
        if raw is None or str(raw).strip() == "":
            raise ValidationError("amount is required", field="amount")
        if isinstance(raw, bool):
            raise ValidationError("amount must be a number", field="amount")
        try:
            cents = int((Decimal(str(raw).strip()) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        except (InvalidOperation, ValueError):
            raise ValidationError("amount must be a number", field="amount") from None

    if cents <= 0:
        raise ValidationError("amount must be greater than 0", field="amount")
    if cents > MAX_INT_COLUMN:
        raise ValidationError("amount is too large", field="amount")
    return cents


# ----------------------------
# Settings
# ----------------------------
@dataclass(frozen=True)
class CheckoutSettings:
    frontend_url: str
    currency: str
    min_donation_cents: int
    max_donation_cents: int
    max_order_quantity: int
    org_name: str

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "CheckoutSettings":
        return cls(
            frontend_url=str(cfg.get("FRONTEND_URL") or "").rstrip("/"),
            currency=str(cfg.get("DEFAULT_CURRENCY") or "usd").lower(),
            min_donation_cents=int(cfg.get("MIN_DONATION_CENTS", 100)),
            max_donation_cents=int(cfg.get("MAX_DONATION_CENTS", 5_000_000)),
            max_order_quantity=int(cfg.get("MAX_ORDER_QUANTITY", 100)),
            org_name=str(cfg.get("ORG_NAME") or "Zonta Club of Naples"),
        )


# ----------------------------
# Normalized requests
# ----------------------------
def _identity(data: Mapping[str, Any], name_keys: Tuple[str, ...], email_keys: Tuple[str, ...]) -> Tuple[str, str]:
    name = _clean(_first(data, *name_keys), 160)
    email = _clean(_first(data, *email_keys), 160).lower()
    if not name:
        raise ValidationError("name is required", field=name_keys[0])
    if not email:
        raise ValidationError("email is required", field=email_keys[0])
    if not _is_email(email):
        raise ValidationError("valid email required", field=email_keys[0])
    return name, email


@dataclass(frozen=True)
class DonationRequest:
    amount_cents: int
    name: str
    email: str
    phone: Optional[str]
    purpose: str
    custom_purpose: Optional[str]
    message: Optional[str]
    is_anonymous: bool
    is_recurring: bool
    frequency: str

    @classmethod
    def from_payload(cls, s: CheckoutSettings, data: Mapping[str, Any]) -> "DonationRequest":
        amount_cents = parse_amount_cents(data)
        if amount_cents < s.min_donation_cents:
            raise ValidationError(
                f"Minimum donation amount is ${s.min_donation_cents / 100:,.2f}",
                field="amount",
            )
        if amount_cents > s.max_donation_cents:
            raise ValidationError(
                f"Maximum donation amount is ${s.max_donation_cents / 100:,.2f}",
                field="amount",
            )

        name, email = _identity(data, ("donorName", "name"), ("donorEmail", "email"))

        purpose = _clean(data.get("purpose"), 60) or "General Fund"
        if purpose not in DONATION_PURPOSES:
            raise ValidationError(f"purpose must be one of: {', '.join(DONATION_PURPOSES)}", field="purpose")

        frequency = _clean(data.get("frequency"), 20) or "one-time"
        if frequency not in DONATION_FREQUENCIES:
            raise ValidationError(f"frequency must be one of: {', '.join(DONATION_FREQUENCIES)}", field="frequency")

        return cls(
            amount_cents=amount_cents,
            name=name,
            email=email,
            phone=_clean(_first(data, "donorPhone", "phone"), 40) or None,
            purpose=purpose,
            custom_purpose=_clean(_first(data, "customPurpose", "custom_purpose"), 160) or None,
            message=_clean(data.get("message"), 500) or None,
            is_anonymous=_truthy(_first(data, "isAnonymous", "is_anonymous", "anonymous")),
            is_recurring=_truthy(_first(data, "isRecurring", "is_recurring")),
            frequency=frequency,
        )


@dataclass(frozen=True)
class ProductOrderRequest:
    product_ref: str
    quantity: int
    name: str
    email: str

    @classmethod
    def from_payload(cls, s: CheckoutSettings, data: Mapping[str, Any]) -> "ProductOrderRequest":
        product_ref = _clean(_first(data, "productId", "product_id"), 220)
        if not product_ref:
            raise ValidationError("productId is required", field="productId")

        raw_qty = _first(data, "quantity")
        if isinstance(raw_qty, bool):
            raise ValidationError("quantity must be an integer", field="quantity")
        try:
            quantity = 1 if raw_qty is None else int(str(raw_qty).strip())
        except ValueError:
            raise ValidationError("quantity must be an integer", field="quantity") from None
        if quantity < 1:
            raise ValidationError("quantity must be at least 1", field="quantity")
        if quantity > s.max_order_quantity:
            raise ValidationError(f"quantity cannot exceed {s.max_order_quantity}", field="quantity")

        name, email = _identity(data, ("customerName", "name"), ("customerEmail", "email"))
        return cls(product_ref=product_ref, quantity=quantity, name=name, email=email)


@dataclass(frozen=True)
class CheckoutResult:
    order_id: int
    session_id: str
    redirect_url: str

    def as_dict(self) -> Dict[str, Any]:
        return {
            "orderId": self.order_id,
            "sessionId": self.session_id,
            "url": self.redirect_url,
            "redirectUrl": self.redirect_url,
        }


@dataclass(frozen=True)
class NotificationResult:
    event_type: str
    outcome: str  # applied | duplicate | unmatched | ignored | awaiting_payment
    order_id: Optional[int] = None


# ----------------------------
# Lifecycle manager
# ----------------------------
class OrderLifecycle:
    def __init__(
        self,
        gateway: PaymentGateway,
        settings: CheckoutSettings,
        *,
        session: Any = None,
        on_completed: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings
        self.session = session if session is not None else db.session
        self.on_completed = on_completed

    # -------------------------------------------------- creation
    def initiate_donation(self, data: Mapping[str, Any]) -> CheckoutResult:
        req = DonationRequest.from_payload(self.settings, data)

        order = Order(
            kind="donation",
            amount_cents=req.amount_cents,
            currency=self.settings.currency,
            name=req.name,
            email=req.email,
            phone=req.phone,
            purpose=req.purpose,
            custom_purpose=req.custom_purpose,
            message=req.message,
            is_anonymous=req.is_anonymous,
            is_recurring=req.is_recurring,
            frequency=req.frequency,
            quantity=1,
            status="pending",
        )
        self._persist_pending(order)

        label = req.custom_purpose if (req.purpose == "Other" and req.custom_purpose) else req.purpose
        item = LineItem(
            name=f"Donation - {label}",
            unit_amount_cents=req.amount_cents,
            description=req.message or f"Support {self.settings.org_name} - {label}",
        )
        return self._open_checkout(
            order,
            [item],
            success_path="/donate/success",
            cancel_path="/donate",
            metadata={"purpose": label, "donor_name": req.name},
        )

    def initiate_product_order(self, data: Mapping[str, Any]) -> CheckoutResult:
        req = ProductOrderRequest.from_payload(self.settings, data)
        product = self._find_product(req.product_ref)

        if product.status != "active":
            raise ValidationError("Product is not available for purchase", field="productId")
        if not product.can_fulfil(req.quantity):
            # nothing persisted, no session requested
            raise StockUnavailableError(available=int(product.inventory or 0))
        if (product.price_cents or 0) <= 0:
            raise ValidationError("Product has no price", field="productId")
        amount_cents = int(product.price_cents) * req.quantity
        if amount_cents > MAX_INT_COLUMN:
            raise ValidationError("Order total is too large", field="quantity")

        order = Order(
            kind="product",
            amount_cents=amount_cents,
            currency=self.settings.currency,
            name=req.name,
            email=req.email,
            product_id=product.id,
            quantity=req.quantity,
            unit_amount_cents=int(product.price_cents),
            status="pending",
        )
        self._persist_pending(order)

        item = LineItem(
            name=product.name,
            unit_amount_cents=int(product.price_cents),
            quantity=req.quantity,
            description=product.short_description or (product.description or "")[:200],
            image=product.featured_image,
        )
        return self._open_checkout(
            order,
            [item],
            success_path="/shop/success",
            cancel_path="/shop",
            metadata={"product_id": str(product.id), "quantity": str(req.quantity), "customer_name": req.name},
        )

    def _find_product(self, ref: str) -> Product:
        pk = row_id(ref)
        product: Optional[Product] = self.session.get(Product, pk) if pk is not None else None
        if product is None:
            product = self.session.execute(select(Product).where(Product.slug == ref)).scalar_one_or_none()
        if product is None:
            raise NotFoundError("Product not found")
        return product

    def _persist_pending(self, order: Order) -> None:
        try:
            self.session.add(order)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            log.exception("orders: failed to persist pending %s order", order.kind)
            raise DependencyError(str(e), service="database") from e

    def _open_checkout(
        self,
        order: Order,
        items: list,
        *,
        success_path: str,
        cancel_path: str,
        metadata: Dict[str, str],
    ) -> CheckoutResult:
        base = self.settings.frontend_url
        md = {"order_id": str(order.id), "kind": order.kind, **metadata}

        # DependencyError propagates; the order stays pending without a session ref
        cs = self.gateway.create_checkout_session(
            line_items=items,
            currency=order.currency,
            customer_email=order.email,
            success_url=f"{base}{success_path}?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base}{cancel_path}",
            metadata={k: str(v)[:500] for k, v in md.items()},
            idempotency_key=f"zonta-order-{order.uuid}",
        )

        self.attach_session(order.id, cs.id)
        log.info("orders: %s order %s opened checkout %s", order.kind, order.id, cs.id)
        return CheckoutResult(order_id=int(order.id), session_id=cs.id, redirect_url=cs.url)

    def attach_session(self, order_id: int, session_id: str) -> bool:
        """pending -> pending: record the checkout session reference (once)."""
        try:
            res = self.session.execute(
                sa_update(Order)
                .where(
                    Order.id == order_id,
                    Order.status == "pending",
                    Order.stripe_session_id.is_(None),
                )
                .values(stripe_session_id=session_id, updated_at=utcnow())
            )
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            log.exception("orders: failed to attach session %s to order %s", session_id, order_id)
            raise DependencyError(str(e), service="database") from e

        if not res.rowcount:
            log.warning("orders: session %s not attached; order %s is no longer pending/unbound", session_id, order_id)
            return False
        return True

    # -------------------------------------------------- queries
    def get_by_session(self, session_id: str, *, kind: Optional[str] = None) -> Order:
        q = select(Order).where(Order.stripe_session_id == session_id)
        if kind:
            q = q.where(Order.kind == kind)
        order = self.session.execute(q).scalar_one_or_none()
        if order is None:
            raise NotFoundError("Order not found")
        return order

    # -------------------------------------------------- webhook
    def handle_payment_notification(self, raw_payload: bytes, signature_header: Optional[str]) -> NotificationResult:
        # raises SignatureVerificationError before anything is parsed or touched
        ev = self.gateway.verify_webhook(raw_payload, signature_header)
        event = parse_event(ev)

        if event.event_id and self._event_seen(event.event_id):
            log.info("webhook: event %s (%s) already processed", event.event_id, event.type)
            return NotificationResult(event.type, "duplicate")

        try:
            outcome, order_id = self._dispatch(event)
            self._record_event(event, outcome, order_id, ev)
            self.session.commit()
        except IntegrityError:
            # the same event id committed concurrently; that delivery owns the transition
            self.session.rollback()
            log.info("webhook: event %s recorded concurrently; skipping", event.event_id)
            return NotificationResult(event.type, "duplicate")
        except SQLAlchemyError as e:
            self.session.rollback()
            log.exception("webhook: store failure while handling %s", event.type)
            raise DependencyError(str(e), service="database") from e

        if outcome == "applied" and isinstance(event, CheckoutCompleted) and order_id and self.on_completed:
            try:
                self.on_completed(order_id)
            except Exception:
                log.exception("webhook: completion hook failed for order %s", order_id)

        return NotificationResult(event.type, outcome, order_id)

    def _event_seen(self, event_id: str) -> bool:
        q = select(StripeEvent.id).where(StripeEvent.event_id == event_id)
        return self.session.execute(q).first() is not None

    def _record_event(self, event: WebhookEvent, outcome: str, order_id: Optional[int], payload: Dict[str, Any]) -> None:
        if not event.event_id:
            return
        self.session.add(
            StripeEvent(
                event_id=event.event_id[:120],
                type=event.type[:120],
                livemode=event.livemode,
                object_id=event.object_id or None,
                order_id=order_id,
                outcome=outcome,
                payload=payload,
            )
        )

    def _dispatch(self, event: WebhookEvent) -> Tuple[str, Optional[int]]:
        if isinstance(event, CheckoutCompleted):
            return self._on_checkout_completed(event)
        if isinstance(event, (CheckoutExpired, CheckoutPaymentFailed)):
            return self._on_checkout_failed(event)
        if isinstance(event, PaymentFailed):
            return self._on_payment_failed(event)

        log.info("webhook: unhandled event type %s", event.type or "?")
        return "ignored", None

    def _find_by_session(self, session_id: str, order_id: Optional[int]) -> Optional[Order]:
        order = self.session.execute(
            select(Order).where(Order.stripe_session_id == session_id)
        ).scalar_one_or_none()
        if order is None and order_id:
            # crash between order insert and session attach leaves no ref; metadata still links them
            cand = self.session.get(Order, order_id)
            if cand is not None and cand.stripe_session_id in (None, session_id):
                order = cand
        return order

    def _transition(self, order: Order, to_status: str, **values: Any) -> bool:
        """Atomic pending -> ``to_status``; False when another delivery got there first."""
        now = utcnow()
        vals: Dict[str, Any] = {"status": to_status, "updated_at": now, **values}
        if to_status == "completed":
            vals["completed_at"] = now
        res = self.session.execute(
            sa_update(Order).where(Order.id == order.id, Order.status == "pending").values(**vals)
        )
        return bool(res.rowcount)

    def _on_checkout_completed(self, ev: CheckoutCompleted) -> Tuple[str, Optional[int]]:
        order = self._find_by_session(ev.session_id, ev.order_id)
        if order is None:
            log.info("webhook: no order for session %s", ev.session_id)
            return "unmatched", None

        if not ev.paid:
            log.info("webhook: session %s completed but unpaid; waiting for async payment", ev.session_id)
            return "awaiting_payment", order.id

        values: Dict[str, Any] = {
            "stripe_payment_intent_id": ev.payment_intent_id,
            "stripe_customer_id": ev.customer_id,
        }
        if not order.stripe_session_id:
            values["stripe_session_id"] = ev.session_id

        if not self._transition(order, "completed", **values):
            if order.status == "failed":
                log.warning("webhook: paid session %s for order %s already marked failed", ev.session_id, order.id)
            else:
                log.info("webhook: order %s already %s; completion skipped", order.id, order.status)
            return "duplicate", order.id

        if order.kind == "product" and order.product_id:
            product = self.session.get(Product, order.product_id, with_for_update=True, populate_existing=True)
            if product is not None:
                product.decrease_inventory(int(order.quantity or 1))
                log.info("webhook: inventory for product %s decreased by %s", product.id, order.quantity)

        log.info("webhook: order %s marked completed", order.id)
        return "applied", order.id

    def _on_checkout_failed(self, ev: Any) -> Tuple[str, Optional[int]]:
        order = self._find_by_session(ev.session_id, ev.order_id)
        if order is None:
            log.info("webhook: no order for session %s", ev.session_id)
            return "unmatched", None
        if not self._transition(order, "failed"):
            log.info("webhook: order %s already %s; %s ignored", order.id, order.status, ev.type)
            return "duplicate", order.id
        log.info("webhook: order %s marked failed (%s)", order.id, ev.type)
        return "applied", order.id

    def _on_payment_failed(self, ev: PaymentFailed) -> Tuple[str, Optional[int]]:
        order = self.session.execute(
            select(Order).where(Order.stripe_payment_intent_id == ev.payment_intent_id)
        ).scalars().first()
        if order is None and ev.order_id:
            cand = self.session.get(Order, ev.order_id)
            if cand is not None and cand.stripe_payment_intent_id in (None, ev.payment_intent_id):
                order = cand
        if order is None:
            log.info("webhook: no order for payment intent %s", ev.payment_intent_id)
            return "unmatched", None

        if not self._transition(order, "failed", stripe_payment_intent_id=ev.payment_intent_id):
            log.info("webhook: order %s already %s; payment failure ignored", order.id, order.status)
            return "duplicate", order.id
        log.info("webhook: order %s marked failed (payment intent %s)", order.id, ev.payment_intent_id)
        return "applied", order.id

    # -------------------------------------------------- housekeeping
    def expire_stale(self, older_than: timedelta) -> int:
        """Fail pending orders created before ``now - older_than``."""
        cutoff = utcnow() - older_than
        try:
            res = self.session.execute(
                sa_update(Order)
                .where(Order.status == "pending", Order.created_at < cutoff)
                .values(status="failed", updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            raise DependencyError(str(e), service="database") from e
        count = int(res.rowcount or 0)
        log.info("orders: expired %s stale pending orders (cutoff %s)", count, cutoff.isoformat())
        return count


__all__ = [
    "CheckoutSettings",
    "CheckoutResult",
    "DonationRequest",
    "NotificationResult",
    "OrderLifecycle",
    "ProductOrderRequest",
    "parse_amount_cents",
]
