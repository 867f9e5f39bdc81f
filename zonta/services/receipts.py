"""
Confirmation emails for completed orders.

Queued after the webhook commit; a mail failure never affects order state.
``receipt_sent`` flips only once the message actually went out.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any, List, Optional

from sqlalchemy import update as sa_update

from zonta.extensions import db, safe_commit, send_email_async
from zonta.models import Order

log = logging.getLogger(__name__)


def _donation_body(order: Order, org: str) -> str:
    lines = [
        f"Dear {order.name},",
        "",
        f"Thank you for your donation of {order.formatted_amount} to {org}.",
        f"Designation: {order.purpose_label}",
    ]
    if order.is_recurring and order.frequency != "one-time":
        lines.append(f"Frequency: {order.frequency}")
    lines += [
        f"Reference: {order.uuid}",
        "",
        "Your gift supports our service and advocacy work in the community.",
        "Please keep this email for your tax records.",
        "",
        f"With gratitude,\n{org}",
    ]
    return "\n".join(lines)


def _product_body(order: Order, org: str) -> str:
    product_name = order.product.name if order.product else "your item"
    unit = (order.unit_amount_cents or 0) / 100.0
    return "\n".join(
        [
            f"Hi {order.name},",
            "",
            f"Thanks for your order from the {org} shop.",
            f"{order.quantity} x {product_name} @ ${unit:,.2f}",
            f"Total: {order.formatted_amount}",
            f"Reference: {order.uuid}",
            "",
            "We'll be in touch about pickup or delivery.",
            "",
            org,
        ]
    )


def _mark_sent(order_id: int) -> None:
    db.session.execute(sa_update(Order).where(Order.id == order_id).values(receipt_sent=True))
    if not safe_commit():
        log.warning("receipts: could not flag order %s as receipted", order_id)


def send_order_confirmation(app: Any, order_id: int) -> Optional[Future]:
    """Queue the donor/customer confirmation (and an admin copy when configured)."""
    order = db.session.get(Order, order_id)
    if order is None or order.status != "completed":
        log.info("receipts: order %s not completed; no confirmation", order_id)
        return None
    if order.receipt_sent:
        return None

    org = app.config.get("ORG_NAME") or "Zonta Club of Naples"
    if order.kind == "donation":
        subject = f"Thank you for your donation to {org}"
        body = _donation_body(order, org)
    else:
        subject = f"Your {org} order confirmation"
        body = _product_body(order, org)

    recipients: List[str] = [order.email]
    fut = send_email_async(
        app,
        subject,
        recipients,
        body=body,
        on_sent=lambda: _mark_sent(order_id),
    )

    admin = (app.config.get("ADMIN_EMAIL") or "").strip()
    if admin:
        send_email_async(
            app,
            f"New {order.kind} received - {order.formatted_amount}",
            [admin],
            body=f"{order.kind.title()} {order.uuid} from {order.name} <{order.email}> for {order.formatted_amount}.",
        )

    log.info("receipts: confirmation queued for order %s", order_id)
    return fut


__all__ = ["send_order_confirmation"]
