"""
Payment gateway seam.

``PaymentGateway`` is what the order lifecycle talks to; ``StripeGateway`` is
the production implementation. The app factory installs one instance on
``app.extensions["payment_gateway"]`` so tests can swap in a fake.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import stripe

from zonta.errors import DependencyError, SignatureVerificationError, ValidationError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str


@dataclass(frozen=True)
class LineItem:
    name: str
    unit_amount_cents: int
    quantity: int = 1
    description: Optional[str] = None
    image: Optional[str] = None

    def to_stripe(self, currency: str) -> Dict[str, Any]:
        product_data: Dict[str, Any] = {"name": self.name[:250]}
        if self.description:
            product_data["description"] = self.description[:500]
        if self.image:
            product_data["images"] = [self.image]
        return {
            "price_data": {
                "currency": currency,
                "product_data": product_data,
                "unit_amount": int(self.unit_amount_cents),
            },
            "quantity": int(self.quantity),
        }


class PaymentGateway:
    """Interface the order lifecycle depends on."""

    def create_checkout_session(
        self,
        *,
        line_items: List[LineItem],
        currency: str,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> CheckoutSession:
        raise NotImplementedError

    def verify_webhook(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    def __init__(self, api_key: str, webhook_secret: str, *, tolerance: int = 300) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = int(tolerance)

    def create_checkout_session(
        self,
        *,
        line_items: List[LineItem],
        currency: str,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
        idempotency_key: Optional[str] = None,
    ) -> CheckoutSession:
        if not self.api_key:
            raise DependencyError("STRIPE_SECRET_KEY not configured", service="stripe")

        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [li.to_stripe(currency) for li in line_items],
            "customer_email": customer_email,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": dict(metadata),
            # failure events arrive on the PaymentIntent, so it carries the correlation id too
            "payment_intent_data": {"metadata": dict(metadata), "receipt_email": customer_email},
        }

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                idempotency_key=idempotency_key,
                **params,
            )
        except stripe.StripeError as e:
            msg = getattr(e, "user_message", None) or str(e)
            log.error("Stripe checkout session create failed: %s", msg, exc_info=True)
            raise DependencyError(msg, service="stripe") from e

        session_id = str(getattr(session, "id", "") or "")
        if not session_id:
            raise DependencyError("Stripe returned a session without id", service="stripe")
        return CheckoutSession(id=session_id, url=str(getattr(session, "url", "") or ""))

    def verify_webhook(self, payload: bytes, sig_header: Optional[str]) -> Dict[str, Any]:
        """Check the signature over the raw body, then (and only then) parse it."""
        if not self.webhook_secret:
            raise SignatureVerificationError("webhook secret not configured")

        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SignatureVerificationError("payload is not utf-8") from e

        try:
            stripe.WebhookSignature.verify_header(text, sig_header or "", self.webhook_secret, self.tolerance)
        except stripe.SignatureVerificationError as e:
            raise SignatureVerificationError(str(e)) from e

        try:
            event = json.loads(text)
        except ValueError as e:
            raise ValidationError("Malformed webhook payload") from e
        if not isinstance(event, dict):
            raise ValidationError("Malformed webhook payload")
        return event


__all__ = ["CheckoutSession", "LineItem", "PaymentGateway", "StripeGateway"]
