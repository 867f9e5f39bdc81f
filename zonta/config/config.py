# zonta/config/config.py
# Canonical site configuration (env-first, production-safe)

from __future__ import annotations

import os
from datetime import timedelta
from typing import Optional


# ----------------------------
# Env helpers
# ----------------------------
_TRUTHY = {"1", "true", "yes", "on", "y"}
_FALSY = {"0", "false", "no", "off", "n"}


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return default
    s = str(v).strip()
    return s if s else default


def _bool(name: str, default: bool = False) -> bool:
    v = _env(name)
    if v is None:
        return default
    s = v.strip().lower()
    if s in _TRUTHY:
        return True
    if s in _FALSY:
        return False
    return default


def _int(name: str, default: int) -> int:
    v = _env(name)
    if v is None:
        return default
    try:
        return int(str(v).strip())
    except ValueError:
        return default


def _clean_base_url(v: Optional[str]) -> str:
    return (v or "").strip().rstrip("/")


# ----------------------------
# Config classes
# ----------------------------
class BaseConfig:
    """
    Env-first config:
    - all important settings can be overridden via environment variables
    - safe defaults for local dev
    """

    ENV = (_env("APP_ENV") or _env("ENV") or _env("FLASK_ENV") or "base").strip().lower()

    DEBUG = _bool("FLASK_DEBUG", False)
    TESTING = _bool("TESTING", False)
    LOG_LEVEL = _env("LOG_LEVEL", "INFO")

    # Security
    SECRET_KEY = _env("SECRET_KEY", "dev-change-me")

    # Where Stripe sends the donor back to (the SPA frontend)
    FRONTEND_URL = _clean_base_url(_env("FRONTEND_URL", "http://localhost:5173"))
    CORS_ORIGINS = _env("CORS_ORIGINS", "*")

    # Cookies
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = _env("SESSION_COOKIE_SAMESITE", "Lax")
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SECURE = True
    PERMANENT_SESSION_LIFETIME = timedelta(days=_int("SESSION_DAYS", 7))

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = _env("SQLALCHEMY_DATABASE_URI", _env("DATABASE_URL", "sqlite:///zonta-dev.db"))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}
    AUTO_CREATE_SQLITE = _bool("AUTO_CREATE_SQLITE", True)

    # Stripe
    STRIPE_SECRET_KEY = _env("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = _env("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_WEBHOOK_TOLERANCE = _int("STRIPE_WEBHOOK_TOLERANCE", 300)

    # Money (minor units)
    DEFAULT_CURRENCY = (_env("DEFAULT_CURRENCY", "usd") or "usd").lower()
    MIN_DONATION_CENTS = _int("MIN_DONATION_CENTS", 100)
    MAX_DONATION_CENTS = _int("MAX_DONATION_CENTS", 50_000 * 100)
    MAX_ORDER_QUANTITY = _int("MAX_ORDER_QUANTITY", 100)

    # Mail
    MAIL_SERVER = _env("MAIL_SERVER", _env("EMAIL_HOST", "localhost"))
    MAIL_PORT = _int("MAIL_PORT", _int("EMAIL_PORT", 587))
    MAIL_USE_TLS = _bool("MAIL_USE_TLS", True)
    MAIL_USERNAME = _env("MAIL_USERNAME", _env("EMAIL_USER"))
    MAIL_PASSWORD = _env("MAIL_PASSWORD", _env("EMAIL_PASSWORD"))
    MAIL_SUPPRESS_SEND = _bool("MAIL_SUPPRESS_SEND", False)
    DEFAULT_MAIL_SENDER = _env("DEFAULT_MAIL_SENDER", _env("EMAIL_FROM", "no-reply@zontanaples.org"))
    ADMIN_EMAIL = _env("ADMIN_EMAIL", "")
    ORG_NAME = _env("ORG_NAME", "Zonta Club of Naples")

    @classmethod
    def init_app(cls, app) -> None:
        """
        Optional hook for factory boot hardening.
        Called from create_app() after app.config.from_object(...)
        """
        uri = str(app.config.get("SQLALCHEMY_DATABASE_URI") or "")

        # SQLite tuning (better concurrency behavior than default)
        if uri.startswith("sqlite:"):
            opts = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
            connect_args = dict(opts.get("connect_args") or {})
            connect_args.setdefault("check_same_thread", False)
            opts["connect_args"] = connect_args
            opts.setdefault("pool_pre_ping", True)
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = opts


class DevelopmentConfig(BaseConfig):
    ENV = "development"
    DEBUG = True

    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestingConfig(BaseConfig):
    ENV = "testing"
    TESTING = True
    DEBUG = False

    SECRET_KEY = "testing-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    AUTO_CREATE_SQLITE = False

    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    WTF_CSRF_ENABLED = False

    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    FRONTEND_URL = "http://frontend.test"
    CORS_ORIGINS = "http://frontend.test"

    MAIL_SUPPRESS_SEND = True
    DEFAULT_MAIL_SENDER = "no-reply@example.org"
    BG_TASKS_INLINE = True


class ProductionConfig(BaseConfig):
    ENV = "production"
    DEBUG = False

    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True
    AUTO_CREATE_SQLITE = False

    @classmethod
    def init_app(cls, app) -> None:
        super().init_app(app)

        # ---- Production guardrails (fail fast) ----
        sk = app.config.get("SECRET_KEY")
        if not sk or sk == "dev-change-me":
            raise RuntimeError("SECRET_KEY must be set to a strong random value in production.")

        frontend = (app.config.get("FRONTEND_URL") or "").strip()
        if frontend.startswith("http://"):
            raise RuntimeError("FRONTEND_URL must be https:// in production.")

        if not (app.config.get("STRIPE_WEBHOOK_SECRET") or "").strip():
            raise RuntimeError("STRIPE_WEBHOOK_SECRET must be set in production.")

        if _bool("FLASK_DEBUG", False):
            raise RuntimeError("FLASK_DEBUG must be 0 in production.")
