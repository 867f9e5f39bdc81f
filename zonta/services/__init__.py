from __future__ import annotations

from typing import Any

from zonta.extensions import get_payment_gateway

from .orders import CheckoutSettings, OrderLifecycle
from .receipts import send_order_confirmation


def build_lifecycle(app: Any) -> OrderLifecycle:
    """OrderLifecycle wired to the app's gateway, config and confirmation mailer."""
    return OrderLifecycle(
        get_payment_gateway(app),
        CheckoutSettings.from_config(app.config),
        on_completed=lambda order_id: send_order_confirmation(app, order_id),
    )


__all__ = ["build_lifecycle", "CheckoutSettings", "OrderLifecycle"]
