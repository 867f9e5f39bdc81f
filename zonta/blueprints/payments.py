#!/usr/bin/env python3
"""
Payments Blueprint (Stripe Checkout): donations + shop orders

Endpoints:
  POST /api/donations/create-checkout
  GET  /api/donations/session/<session_id>
  POST /api/products/checkout
  GET  /api/products/session/<session_id>

  POST /payments/stripe/webhook

Contracts:
- API-style JSON: never cached; ``{ok: true, ...}`` on success, domain errors
  rendered by the app-level handler as ``{ok: false, error: {...}}``.
- Webhook: raw body is verified before anything is parsed. 400 on a bad
  signature (generic text only), 200 once handled or recognized as a
  duplicate, 500 on store failure so Stripe retries.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, cast

from flask import Blueprint, current_app, jsonify, request

from zonta.errors import DependencyError, SignatureVerificationError, ValidationError
from zonta.extensions import csrf, db
from zonta.services import build_lifecycle

bp = Blueprint("payments", __name__)

# API-style JSON; Stripe cannot send a CSRF token
csrf.exempt(bp)


# ----------------------------
# Small utilities
# ----------------------------
def _request_payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data:
        return cast(Dict[str, Any], data)
    if request.form:
        return cast(Dict[str, Any], request.form.to_dict(flat=True))
    return {}


def _json_response(payload: Dict[str, Any], status: int = 200):
    resp = jsonify(payload)
    resp.status_code = int(status)
    resp.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, max-age=0")
    resp.headers.setdefault("Pragma", "no-cache")
    resp.headers.setdefault("Expires", "0")
    return resp


def _json_ok(payload: Dict[str, Any], status: int = 200):
    payload.setdefault("ok", True)
    return _json_response(payload, status)


def _lifecycle():
    return build_lifecycle(current_app._get_current_object())  # type: ignore[attr-defined]


# ----------------------------
# Donations
# ----------------------------
@bp.post("/api/donations/create-checkout")
def create_donation_checkout():
    result = _lifecycle().initiate_donation(_request_payload())
    return _json_ok(result.as_dict())


@bp.get("/api/donations/session/<session_id>")
def donation_by_session(session_id: str):
    order = _lifecycle().get_by_session(session_id, kind="donation")
    return _json_ok({"donation": order.as_dict()})


# ----------------------------
# Shop orders
# ----------------------------
@bp.post("/api/products/checkout")
def create_product_checkout():
    result = _lifecycle().initiate_product_order(_request_payload())
    return _json_ok(result.as_dict())


@bp.get("/api/products/session/<session_id>")
def product_order_by_session(session_id: str):
    order = _lifecycle().get_by_session(session_id, kind="product")
    return _json_ok({"order": order.as_dict()})


# ----------------------------
# Stripe webhook
# ----------------------------
@bp.route("/payments/stripe/webhook", methods=["POST", "OPTIONS"])
def stripe_webhook():
    if request.method == "OPTIONS":
        return ("", 200)

    payload = request.get_data(cache=False, as_text=False)
    sig: Optional[str] = (request.headers.get("Stripe-Signature") or "").strip() or None

    try:
        result = _lifecycle().handle_payment_notification(payload, sig)
    except SignatureVerificationError as e:
        current_app.logger.warning("payments: webhook rejected: %s", e.reason)
        return _json_response({"error": "Webhook Error: signature verification failed"}, 400)
    except ValidationError as e:
        current_app.logger.warning("payments: webhook payload rejected: %s", e.message)
        return _json_response({"error": "Webhook Error: malformed payload"}, 400)
    except DependencyError as e:
        db.session.rollback()
        current_app.logger.error("payments: webhook processing failed (will retry): %s", e.detail)
        return ("", 500)

    current_app.logger.info(
        "payments: webhook %s -> %s (order=%s)", result.event_type or "?", result.outcome, result.order_id
    )
    return _json_response({"received": True})


__all__ = ["bp"]
