from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Any, Callable, Dict, List, Optional

import pytest

from zonta import create_app
from zonta.config import TestingConfig
from zonta.errors import DependencyError
from zonta.extensions import db
from zonta.models import Product, User
from zonta.services.gateway import CheckoutSession, StripeGateway

WEBHOOK_SECRET = TestingConfig.STRIPE_WEBHOOK_SECRET


class FakeGateway(StripeGateway):
    """Real webhook verification, canned checkout sessions (cs_test_1, cs_test_2, ...)."""

    def __init__(self) -> None:
        super().__init__(api_key="sk_test_dummy", webhook_secret=WEBHOOK_SECRET)
        self.calls: List[Dict[str, Any]] = []
        self.fail = False
        self.on_create: Optional[Callable[[Dict[str, Any]], None]] = None
        self._n = 0

    def create_checkout_session(self, **kwargs: Any) -> CheckoutSession:
        self.calls.append(kwargs)
        if self.on_create is not None:
            self.on_create(kwargs)
        if self.fail:
            raise DependencyError("stripe down", service="stripe")
        self._n += 1
        sid = f"cs_test_{self._n}"
        return CheckoutSession(id=sid, url=f"https://checkout.stripe.test/c/pay/{sid}")


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def app(gateway):
    app = create_app(TestingConfig, payment_gateway=gateway)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Stripe-Signature header value for ``payload`` (t=<ts>,v1=<hmac-sha256>)."""
    ts = int(time.time()) if timestamp is None else int(timestamp)
    mac = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={mac}"


def session_event(
    session_id: str,
    *,
    event_id: str = "evt_1",
    etype: str = "checkout.session.completed",
    order_id: Optional[int] = None,
    payment_status: str = "paid",
    payment_intent: str = "pi_test_1",
) -> str:
    obj: Dict[str, Any] = {
        "id": session_id,
        "object": "checkout.session",
        "payment_intent": payment_intent,
        "customer": "cus_test_1",
        "payment_status": payment_status,
        "metadata": {"order_id": str(order_id)} if order_id else {},
    }
    return json.dumps({"id": event_id, "type": etype, "livemode": False, "data": {"object": obj}})


def post_webhook(client, payload: str, signature: Optional[str] = None):
    headers = {"Content-Type": "application/json"}
    headers["Stripe-Signature"] = sign(payload) if signature is None else signature
    return client.post("/payments/stripe/webhook", data=payload, headers=headers)


@pytest.fixture()
def make_product(app):
    def _make(**kw: Any) -> Product:
        fields: Dict[str, Any] = {
            "name": "Rose Tote",
            "description": "Canvas tote with the club rose.",
            "price_cents": 2500,
            "inventory": 2,
            "track_inventory": True,
            "allow_backorder": False,
            "status": "active",
            "category": "Accessories",
        }
        fields.update(kw)
        p = Product(**fields)
        db.session.add(p)
        db.session.commit()
        return p

    return _make


@pytest.fixture()
def admin_client(app, client):
    user = User(email="admin@example.org", is_admin=True)
    user.set_password("correct-horse")
    db.session.add(user)
    db.session.commit()
    resp = client.post("/admin/login", json={"email": "admin@example.org", "password": "correct-horse"})
    assert resp.status_code == 200
    return client
