from __future__ import annotations

from tests.conftest import post_webhook, session_event
from zonta.extensions import db, mail
from zonta.models import Order, utcnow
from zonta.services import build_lifecycle
from zonta.services.receipts import send_order_confirmation


def _reload(order_id: int) -> Order:
    db.session.expire_all()
    return db.session.get(Order, order_id)


def test_completed_donation_gets_a_receipt(app, client):
    result = build_lifecycle(app).initiate_donation(
        {"donorName": "Ada Lovelace", "donorEmail": "ada@example.org", "amount": 75, "purpose": "Scholarships"}
    )

    with mail.record_messages() as outbox:
        assert post_webhook(client, session_event(result.session_id, event_id="evt_r1")).status_code == 200
        # redelivery must not send a second receipt
        assert post_webhook(client, session_event(result.session_id, event_id="evt_r1")).status_code == 200

    assert len(outbox) == 1
    msg = outbox[0]
    assert msg.recipients == ["ada@example.org"]
    assert "Thank you for your donation" in msg.subject
    assert "$75.00" in msg.body
    assert "Scholarships" in msg.body
    assert _reload(result.order_id).receipt_sent is True


def test_admin_copy_when_configured(app, client, make_product):
    app.config["ADMIN_EMAIL"] = "treasurer@example.org"
    product = make_product(inventory=5)
    result = build_lifecycle(app).initiate_product_order(
        {"productId": product.id, "quantity": 2, "customerName": "Bo", "customerEmail": "bo@example.org"}
    )

    with mail.record_messages() as outbox:
        post_webhook(client, session_event(result.session_id, event_id="evt_r2"))

    assert sorted(m.recipients[0] for m in outbox) == ["bo@example.org", "treasurer@example.org"]
    customer = next(m for m in outbox if m.recipients == ["bo@example.org"])
    assert "2 x Rose Tote" in customer.body
    assert "$50.00" in customer.body


def test_pending_orders_are_not_receipted(app):
    order = Order(kind="donation", amount_cents=500, name="A", email="a@example.org")
    db.session.add(order)
    db.session.commit()

    with mail.record_messages() as outbox:
        assert send_order_confirmation(app, order.id) is None
    assert outbox == []


def test_mail_failure_leaves_order_completed(app, monkeypatch):
    order = Order(
        kind="donation",
        amount_cents=500,
        name="A",
        email="a@example.org",
        status="completed",
        completed_at=utcnow(),
    )
    db.session.add(order)
    db.session.commit()

    def _boom(msg):
        raise ConnectionRefusedError("smtp down")

    monkeypatch.setattr(mail, "send", _boom)
    monkeypatch.setattr("zonta.extensions.time.sleep", lambda s: None)
    fut = send_order_confirmation(app, order.id)
    assert fut is not None
    assert fut.result() is False

    reloaded = _reload(order.id)
    assert reloaded.status == "completed"
    assert reloaded.receipt_sent is False
