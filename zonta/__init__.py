# zonta/__init__.py
# Zonta Naples site backend: Flask app factory
# Goals:
# - deterministic blueprint registration (Stripe-safe)
# - proxy-correct behind a reverse proxy
# - JSON error shape everywhere (this is an API for the SPA frontend)

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List, Optional, Type, Union
from uuid import uuid4

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.utils import import_string

# IMPORTANT: never override real env vars in prod
load_dotenv(override=False)

ConfigLike = Union[str, Type[Any]]

from zonta.errors import DependencyError, OrderError  # noqa: E402
from zonta.extensions import cors, csrf, db, init_payment_gateway, login_manager, mail, migrate  # noqa: E402

__version__ = "1.0.0"


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _env_bool(name: str) -> Optional[bool]:
    v = os.getenv(name)
    if v is None:
        return None
    s = str(v).strip().lower()
    if s in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "f", "no", "n", "off"}:
        return False
    return None


def _env_mode(app: Optional[Flask] = None) -> str:
    """
    Determine environment mode deterministically.
    Priority:
      1) app.config["ENV"] (if present and meaningful)
      2) APP_ENV / ENV / FLASK_ENV env vars
      3) default "development"
    """
    if app is not None:
        v = app.config.get("ENV")
        if v and str(v).strip() and str(v).strip() not in {"?", "base"}:
            return str(v).strip().lower()

    for key in ("APP_ENV", "ENV", "FLASK_ENV"):
        val = (os.getenv(key) or "").strip().lower()
        if val:
            if val in {"prod"}:
                return "production"
            if val in {"dev"}:
                return "development"
            return val

    return "development"


def _resolve_config(target: Optional[ConfigLike]) -> ConfigLike:
    """
    Choose config class/module path.
    - If explicitly provided, respect it.
    - Else if FLASK_CONFIG is set, use it: a short name ("testing") or a dotted path.
    - Else pick by environment name, falling back to DevelopmentConfig.
    """
    from zonta.config import CONFIG_BY_NAME, DevelopmentConfig

    if target is not None:
        return target

    explicit = (os.getenv("FLASK_CONFIG") or "").strip()
    if explicit:
        return CONFIG_BY_NAME.get(explicit.lower(), explicit)

    return CONFIG_BY_NAME.get(_env_mode(None), DevelopmentConfig)


def _is_prod(app: Flask) -> bool:
    return _env_mode(app) == "production"


def _json_error(message: str, status: int, **extra: Any):
    payload: Dict[str, Any] = {"ok": False, "error": {"code": int(status), "message": str(message)}}
    rid = extra.pop("request_id", None)
    if rid:
        payload["error"]["request_id"] = rid
    if extra:
        payload["error"].update(extra)

    resp = jsonify(payload)
    resp.status_code = int(status)
    return resp


def _parse_cors_origins(app: Flask) -> Union[str, List[str]]:
    raw = str(app.config.get("CORS_ORIGINS") or "").strip()
    if not raw:
        raw = app.config.get("FRONTEND_URL") or "*"
    if raw == "*":
        return raw
    if "," in raw:
        return [o.strip() for o in raw.split(",") if o.strip()]
    return raw


# -----------------------------------------------------------------------------
# Logging with request_id
# -----------------------------------------------------------------------------
class _RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            record.request_id = getattr(g, "request_id", "-")
        except RuntimeError:
            # outside an app/request context
            record.request_id = "-"
        return True


def _configure_logging(app: Flask) -> None:
    fmt = "%(asctime)s [%(levelname)s] %(name)s [rid=%(request_id)s]: %(message)s"
    root = logging.getLogger()

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt))
        handler.addFilter(_RequestIDFilter())
        root.addHandler(handler)
    else:
        for h in root.handlers:
            if not any(isinstance(f, _RequestIDFilter) for f in h.filters):
                h.addFilter(_RequestIDFilter())
            if not getattr(h, "formatter", None) or "%(request_id)s" not in getattr(h.formatter, "_fmt", ""):
                h.setFormatter(logging.Formatter(fmt))

    root.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    logging.getLogger("werkzeug").setLevel(str(app.config.get("WERKZEUG_LOG_LEVEL", "WARNING")).upper())
    app.logger.info("Loaded config: ENV=%s DEBUG=%s", app.config.get("ENV", "?"), app.debug)


# -----------------------------------------------------------------------------
# ProxyFix (reverse proxy)
# -----------------------------------------------------------------------------
def _apply_proxyfix(app: Flask) -> None:
    trust = _env_bool("TRUST_PROXY")
    if trust is None:
        trust = _is_prod(app)

    if not trust:
        return

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)
    app.logger.info("ProxyFix enabled (trusting X-Forwarded-* headers).")
    app.config["PREFERRED_URL_SCHEME"] = "https"


def _init_cors(app: Flask, cors_origins: Union[str, List[str]]) -> None:
    # admin is cookie-authenticated, so credentials only with an explicit origin list
    supports_credentials = cors_origins != "*"

    cors.init_app(
        app,
        supports_credentials=supports_credentials,
        resources={
            r"/api/*": {"origins": cors_origins},
            r"/admin/*": {"origins": cors_origins},
        },
        expose_headers=["X-Request-ID", "Content-Disposition"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    )


def _maybe_create_sqlite_tables(app: Flask) -> None:
    uri = (app.config.get("SQLALCHEMY_DATABASE_URI") or "").strip()
    if not uri.startswith("sqlite"):
        return
    if app.config.get("AUTO_CREATE_SQLITE", True) is not True:
        return
    try:
        with app.app_context():
            db.create_all()
    except Exception:
        app.logger.exception("SQLite create_all failed (continuing)")


# -----------------------------------------------------------------------------
# Request lifecycle + errors
# -----------------------------------------------------------------------------
def _register_request_lifecycle(app: Flask) -> None:
    @app.before_request
    def _bootstrap_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid4().hex
        g._start_ts = time.perf_counter()

    @app.after_request
    def _attach_request_headers(resp):
        resp.headers["X-Request-ID"] = getattr(g, "request_id", "-")
        start = getattr(g, "_start_ts", None)
        if start:
            resp.headers["X-Response-Time-ms"] = str(int((time.perf_counter() - start) * 1000))
        return resp


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(OrderError)
    def _order_err(err: OrderError):
        if isinstance(err, DependencyError):
            db.session.rollback()
            app.logger.error("Dependency failure (%s): %s", err.service or "?", err.detail)
        else:
            app.logger.info("Request rejected (%s): %s", err.status_code, err.message)
        extra = {k: v for k, v in err.to_dict().items() if k not in ("code", "message")}
        return _json_error(err.message, err.status_code, request_id=getattr(g, "request_id", "-"), **extra)

    @app.errorhandler(HTTPException)
    def _http_err(err: HTTPException):
        return _json_error(err.description or err.name, err.code or 500, request_id=getattr(g, "request_id", "-"))

    @app.errorhandler(Exception)
    def _uncaught(err: Exception):
        app.logger.exception("Unhandled error")
        db.session.rollback()

        if (request.path or "").startswith("/payments/stripe/webhook"):
            return ("", 500)
        return _json_error("Internal Server Error", 500, request_id=getattr(g, "request_id", "-"))


# -----------------------------------------------------------------------------
# Auth
# -----------------------------------------------------------------------------
def _init_login(app: Flask) -> None:
    from zonta.models import User, row_id

    login_manager.init_app(app)
    login_manager.session_protection = "basic"

    @login_manager.user_loader
    def load_user(uid: str):
        pk = row_id(uid)
        if pk is None:
            return None
        user = db.session.get(User, pk)
        return user if (user is not None and user.is_active) else None

    @login_manager.unauthorized_handler
    def _unauthorized():
        return _json_error("Authentication required", 401)


# -----------------------------------------------------------------------------
# Blueprints
# -----------------------------------------------------------------------------
def _register_blueprints(app: Flask) -> None:
    from zonta.admin.routes import bp as admin_bp
    from zonta.blueprints.health import bp as health_bp
    from zonta.blueprints.payments import bp as payments_bp
    from zonta.blueprints.shop import bp as shop_bp

    # payments first: its /api/products/checkout + /session routes sit beside the catalogue
    for bp in (payments_bp, shop_bp, admin_bp, health_bp):
        app.register_blueprint(bp)
        app.logger.debug("Registered blueprint %s", bp.name)


# -----------------------------------------------------------------------------
# App Factory
# -----------------------------------------------------------------------------
def create_app(config_class: Optional[ConfigLike] = None, *, payment_gateway: Any = None) -> Flask:
    app = Flask(__name__, static_folder=None, template_folder=None)

    # ---- Config loading
    cfg = _resolve_config(config_class)
    if isinstance(cfg, str):
        try:
            cfg = import_string(cfg)
        except ImportError as exc:
            raise RuntimeError(f"Invalid FLASK_CONFIG '{cfg}': {exc}") from exc
    app.config.from_object(cfg)

    # ---- Normalize environment
    app.config["ENV"] = _env_mode(app)

    # config-level boot hardening (production guardrails fail fast here)
    init_hook = getattr(cfg, "init_app", None)
    if init_hook is not None:
        init_hook(app)

    app.url_map.strict_slashes = False
    app.config.setdefault("JSON_SORT_KEYS", False)
    app.config.setdefault("PROPAGATE_EXCEPTIONS", False)

    # ---- Proxy handling first
    _apply_proxyfix(app)

    # ---- Logging
    _configure_logging(app)

    # ---- Core extensions
    _init_cors(app, _parse_cors_origins(app))
    csrf.init_app(app)

    db.init_app(app)
    # models must be imported before create_all / migrations see the metadata
    import zonta.models  # noqa: F401

    _maybe_create_sqlite_tables(app)
    migrate.init_app(app, db, compare_type=True, render_as_batch=True)
    mail.init_app(app)

    init_payment_gateway(app, payment_gateway)

    # ---- Request lifecycle / errors / auth
    _register_request_lifecycle(app)
    _register_error_handlers(app)
    _init_login(app)

    # ---- Blueprints + CLI
    _register_blueprints(app)

    from zonta.cli import register_cli

    register_cli(app)

    return app


__all__ = ["create_app", "__version__"]
