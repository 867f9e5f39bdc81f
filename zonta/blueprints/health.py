from __future__ import annotations

import os
import socket
import time
from datetime import datetime, timezone
from typing import Any, Dict

from flask import Blueprint, current_app, jsonify
from sqlalchemy import text

from zonta.extensions import db

bp = Blueprint("health", __name__)

APP_STARTED_AT = time.time()
HOSTNAME = socket.gethostname()

BUILD_VERSION = (
    os.getenv("BUILD_VERSION") or os.getenv("RELEASE") or os.getenv("VERSION") or "dev"
)
GIT_SHA = os.getenv("GIT_SHA", "")[:12]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _overall_status(parts: Dict[str, Dict[str, Any]]) -> str:
    states = [p.get("status", "ok") for p in parts.values()]
    if any(s == "fail" for s in states):
        return "fail"
    if any(s == "degraded" for s in states):
        return "degraded"
    return "ok"


def _db_check() -> Dict[str, Any]:
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "ok", "ok": True}
    except Exception as e:
        db.session.rollback()
        current_app.logger.warning("health: db check failed: %s", e)
        return {"status": "fail", "ok": False, "error": type(e).__name__}


def _stripe_check() -> Dict[str, Any]:
    key = (current_app.config.get("STRIPE_SECRET_KEY") or "").strip()
    whsec = (current_app.config.get("STRIPE_WEBHOOK_SECRET") or "").strip()
    if not key:
        return {"status": "degraded", "ok": False, "reason": "no-secret-key"}
    return {
        "status": "ok" if whsec else "degraded",
        "ok": bool(whsec),
        "mode": "live" if key.startswith(("sk_live_", "rk_live_")) else "test",
        "webhookSecretPresent": bool(whsec),
    }


@bp.get("/healthz")
def healthz():
    parts = {"db": _db_check(), "stripe": _stripe_check()}
    overall = _overall_status(parts)
    payload = {
        "status": overall,
        "version": BUILD_VERSION,
        "hostname": HOSTNAME,
        "uptime_s": int(time.time() - APP_STARTED_AT),
        "now": _now_iso(),
        "parts": parts,
    }
    return jsonify(payload), (200 if overall != "fail" else 503)


@bp.get("/version")
def version():
    return jsonify(
        {
            "version": BUILD_VERSION,
            "git": GIT_SHA,
            "env": current_app.config.get("ENV"),
            "started_at": datetime.fromtimestamp(APP_STARTED_AT, tz=timezone.utc).isoformat(timespec="seconds"),
        }
    )
