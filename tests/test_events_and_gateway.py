from __future__ import annotations

import json

import pytest

from tests.conftest import FakeGateway, sign
from zonta.errors import DependencyError, SignatureVerificationError, ValidationError
from zonta.services.events import (
    CheckoutCompleted,
    CheckoutExpired,
    CheckoutPaymentFailed,
    PaymentFailed,
    UnhandledEvent,
    parse_event,
)
from zonta.services.gateway import LineItem, StripeGateway


def _event(etype, obj, **kw):
    ev = {"id": "evt_1", "type": etype, "livemode": False, "data": {"object": obj}}
    ev.update(kw)
    return ev


class TestParseEvent:
    def test_completed_session(self):
        ev = parse_event(
            _event(
                "checkout.session.completed",
                {
                    "id": "cs_1",
                    "payment_intent": "pi_1",
                    "customer": {"id": "cus_1"},
                    "payment_status": "paid",
                    "metadata": {"order_id": "42"},
                },
            )
        )
        assert isinstance(ev, CheckoutCompleted)
        assert ev.session_id == "cs_1"
        assert ev.payment_intent_id == "pi_1"
        assert ev.customer_id == "cus_1"
        assert ev.paid is True
        assert ev.order_id == 42

    def test_unpaid_completion(self):
        ev = parse_event(_event("checkout.session.completed", {"id": "cs_1", "payment_status": "unpaid"}))
        assert isinstance(ev, CheckoutCompleted)
        assert ev.paid is False
        assert ev.order_id is None

    @pytest.mark.parametrize(
        "etype,cls",
        [
            ("checkout.session.async_payment_succeeded", CheckoutCompleted),
            ("checkout.session.expired", CheckoutExpired),
            ("checkout.session.async_payment_failed", CheckoutPaymentFailed),
            ("payment_intent.payment_failed", PaymentFailed),
            ("charge.refunded", UnhandledEvent),
        ],
    )
    def test_dispatch_by_type(self, etype, cls):
        assert isinstance(parse_event(_event(etype, {"id": "obj_1"})), cls)

    def test_non_numeric_order_metadata_is_ignored(self):
        ev = parse_event(_event("checkout.session.expired", {"id": "cs_1", "metadata": {"order_id": "1; drop"}}))
        assert ev.order_id is None

    @pytest.mark.parametrize("raw", ["²", "99999999999999999999", "0"])
    def test_order_metadata_that_cannot_name_a_row_is_ignored(self, raw):
        ev = parse_event(_event("checkout.session.expired", {"id": "cs_1", "metadata": {"order_id": raw}}))
        assert ev.order_id is None

    def test_missing_object_is_unhandled(self):
        assert isinstance(parse_event({"id": "evt_1", "type": "checkout.session.completed"}), UnhandledEvent)


class TestStripeGateway:
    def test_verify_webhook_returns_parsed_event(self):
        gw = FakeGateway()
        payload = json.dumps({"id": "evt_1", "type": "ping"})
        assert gw.verify_webhook(payload.encode(), sign(payload)) == {"id": "evt_1", "type": "ping"}

    def test_tampered_body_fails(self):
        gw = FakeGateway()
        payload = json.dumps({"id": "evt_1", "type": "ping"})
        header = sign(payload)
        with pytest.raises(SignatureVerificationError):
            gw.verify_webhook(payload.replace("ping", "pong").encode(), header)

    def test_missing_secret_rejects_everything(self):
        gw = StripeGateway(api_key="sk_test_x", webhook_secret="")
        payload = "{}"
        with pytest.raises(SignatureVerificationError) as exc:
            gw.verify_webhook(payload.encode(), sign(payload))
        assert exc.value.message == "Webhook signature verification failed"

    def test_non_object_payload_is_malformed(self):
        gw = FakeGateway()
        with pytest.raises(ValidationError):
            gw.verify_webhook(b"[1, 2]", sign("[1, 2]"))

    def test_checkout_without_api_key_is_a_dependency_error(self):
        gw = StripeGateway(api_key="", webhook_secret="whsec_x")
        with pytest.raises(DependencyError):
            gw.create_checkout_session(
                line_items=[LineItem(name="Donation", unit_amount_cents=500)],
                currency="usd",
                customer_email="a@example.org",
                success_url="https://x/s",
                cancel_url="https://x/c",
                metadata={"order_id": "1"},
            )

    def test_checkout_passes_per_request_key_and_metadata(self, monkeypatch):
        captured = {}

        class _Session:
            id = "cs_live_1"
            url = "https://checkout.stripe.com/c/pay/cs_live_1"

        def _create(**kwargs):
            captured.update(kwargs)
            return _Session()

        monkeypatch.setattr("stripe.checkout.Session.create", _create)
        gw = StripeGateway(api_key="sk_test_abc", webhook_secret="whsec_x")
        session = gw.create_checkout_session(
            line_items=[LineItem(name="Tote", unit_amount_cents=2500, quantity=2, image="https://img/x.png")],
            currency="usd",
            customer_email="a@example.org",
            success_url="https://x/s",
            cancel_url="https://x/c",
            metadata={"order_id": "7"},
            idempotency_key="zonta-order-abc",
        )

        assert session.id == "cs_live_1"
        assert captured["api_key"] == "sk_test_abc"
        assert captured["idempotency_key"] == "zonta-order-abc"
        assert captured["mode"] == "payment"
        assert captured["metadata"] == {"order_id": "7"}
        assert captured["payment_intent_data"]["metadata"] == {"order_id": "7"}
        item = captured["line_items"][0]
        assert item["quantity"] == 2
        assert item["price_data"]["unit_amount"] == 2500
        assert item["price_data"]["product_data"]["images"] == ["https://img/x.png"]

    def test_stripe_errors_become_dependency_errors(self, monkeypatch):
        import stripe

        def _boom(**kwargs):
            raise stripe.APIConnectionError("network down")

        monkeypatch.setattr("stripe.checkout.Session.create", _boom)
        gw = StripeGateway(api_key="sk_test_abc", webhook_secret="whsec_x")
        with pytest.raises(DependencyError) as exc:
            gw.create_checkout_session(
                line_items=[LineItem(name="Donation", unit_amount_cents=500)],
                currency="usd",
                customer_email="a@example.org",
                success_url="https://x/s",
                cancel_url="https://x/c",
                metadata={},
            )
        assert exc.value.service == "stripe"
        assert "network down" in exc.value.detail
