"""
Typed view of the Stripe webhook events the order lifecycle reacts to.

``parse_event`` turns a verified event dict into one of the variants below.
Anything else becomes ``UnhandledEvent``, which the lifecycle logs and ignores.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from zonta.models.mixins import row_id


@dataclass(frozen=True)
class _Base:
    event_id: str
    type: str
    livemode: bool
    object_id: str


@dataclass(frozen=True)
class CheckoutCompleted(_Base):
    session_id: str
    payment_intent_id: Optional[str]
    customer_id: Optional[str]
    paid: bool
    order_id: Optional[int] = None


@dataclass(frozen=True)
class CheckoutExpired(_Base):
    session_id: str
    order_id: Optional[int] = None


@dataclass(frozen=True)
class CheckoutPaymentFailed(_Base):
    session_id: str
    order_id: Optional[int] = None


@dataclass(frozen=True)
class PaymentFailed(_Base):
    payment_intent_id: str
    order_id: Optional[int] = None


@dataclass(frozen=True)
class UnhandledEvent(_Base):
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


WebhookEvent = Union[CheckoutCompleted, CheckoutExpired, CheckoutPaymentFailed, PaymentFailed, UnhandledEvent]

COMPLETED_TYPES = ("checkout.session.completed", "checkout.session.async_payment_succeeded")


def _str_or_none(v: Any) -> Optional[str]:
    if isinstance(v, dict):
        # expanded objects
        v = v.get("id")
    s = str(v or "").strip()
    return s or None


def _order_id(obj: Dict[str, Any]) -> Optional[int]:
    md = obj.get("metadata") if isinstance(obj.get("metadata"), dict) else {}
    return row_id(md.get("order_id"))


def parse_event(ev: Dict[str, Any]) -> WebhookEvent:
    etype = str(ev.get("type") or "").strip().lower()
    obj = (ev.get("data") or {}).get("object") if isinstance(ev.get("data"), dict) else None
    if not isinstance(obj, dict):
        obj = {}

    base = {
        "event_id": str(ev.get("id") or ""),
        "type": etype,
        "livemode": bool(ev.get("livemode") or False),
        "object_id": str(obj.get("id") or "")[:255],
    }

    if etype in COMPLETED_TYPES and base["object_id"]:
        return CheckoutCompleted(
            **base,
            session_id=base["object_id"],
            payment_intent_id=_str_or_none(obj.get("payment_intent")),
            customer_id=_str_or_none(obj.get("customer")),
            # delayed methods report completed with payment_status=unpaid
            paid=str(obj.get("payment_status") or "paid").lower() != "unpaid",
            order_id=_order_id(obj),
        )

    if etype == "checkout.session.expired" and base["object_id"]:
        return CheckoutExpired(**base, session_id=base["object_id"], order_id=_order_id(obj))

    if etype == "checkout.session.async_payment_failed" and base["object_id"]:
        return CheckoutPaymentFailed(**base, session_id=base["object_id"], order_id=_order_id(obj))

    if etype == "payment_intent.payment_failed" and base["object_id"]:
        return PaymentFailed(**base, payment_intent_id=base["object_id"], order_id=_order_id(obj))

    return UnhandledEvent(**base, raw=ev)


__all__ = [
    "CheckoutCompleted",
    "CheckoutExpired",
    "CheckoutPaymentFailed",
    "PaymentFailed",
    "UnhandledEvent",
    "WebhookEvent",
    "parse_event",
]
