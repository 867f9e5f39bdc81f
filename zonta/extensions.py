import atexit
import logging
import os
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from flask_cors import CORS
from flask_login import LoginManager
from flask_mail import Mail, Message
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect

log = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Core singletons
# ─────────────────────────────────────────────────────────────
db = SQLAlchemy()
migrate = Migrate()
mail = Mail()
login_manager = LoginManager()
csrf = CSRFProtect()
cors = CORS()


# ─────────────────────────────────────────────────────────────
# Background tasks + clean shutdown
# ─────────────────────────────────────────────────────────────
_BG_MAX_WORKERS = int(os.getenv("BG_MAX_WORKERS", "4"))
_EXECUTOR = ThreadPoolExecutor(max_workers=_BG_MAX_WORKERS)


def run_bg(func: Callable[..., Any], *args: Any, inline: bool = False, **kwargs: Any) -> Future:
    """Submit ``func`` to the shared pool, or run it right away when ``inline``."""
    if not inline:
        return _EXECUTOR.submit(func, *args, **kwargs)

    fut: Future = Future()
    try:
        fut.set_result(func(*args, **kwargs))
    except Exception as e:
        fut.set_exception(e)
    return fut


@atexit.register
def _shutdown_executor() -> None:
    _EXECUTOR.shutdown(wait=False, cancel_futures=True)


# ─────────────────────────────────────────────────────────────
# Safe DB helpers
# ─────────────────────────────────────────────────────────────
def safe_commit() -> bool:
    try:
        db.session.commit()
        return True
    except Exception as e:
        log.error("DB commit failed: %s", e, exc_info=True)
        db.session.rollback()
        return False


# ─────────────────────────────────────────────────────────────
# Email helper
# ─────────────────────────────────────────────────────────────
def send_email_async(
    app: Any,
    subject: str,
    recipients: List[str],
    *,
    body: Optional[str] = None,
    html: Optional[str] = None,
    sender: Optional[str] = None,
    on_sent: Optional[Callable[[], None]] = None,
    max_retries: int = 2,
    retry_backoff: float = 0.5,
) -> Future:
    def _job() -> bool:
        # Always run inside an app context
        with app.app_context():
            logger = getattr(app, "logger", log)

            try:
                msg = Message(
                    subject=subject,
                    recipients=recipients,
                    sender=sender or app.config.get("DEFAULT_MAIL_SENDER"),
                    html=html,
                    body=body,
                )

                attempts = 0
                while True:
                    try:
                        mail.send(msg)
                        break
                    except Exception as e:
                        attempts += 1
                        if attempts > max_retries:
                            raise
                        logger.warning(
                            "Mail send failed (attempt %s/%s): %s",
                            attempts,
                            max_retries,
                            e,
                        )
                        time.sleep(float(retry_backoff) * attempts)

                if on_sent is not None:
                    on_sent()
                return True

            except Exception as e:
                logger.error("Email send permanently failed: %s", e, exc_info=True)
                return False

    return run_bg(_job, inline=bool(app.config.get("BG_TASKS_INLINE", False)))


# ─────────────────────────────────────────────────────────────
# Payment gateway (injected, not process-global)
# ─────────────────────────────────────────────────────────────
def _guess_stripe_mode(api_key: Optional[str]) -> str:
    if not api_key:
        return "disabled"
    if api_key.startswith(("sk_live_", "rk_live_")):
        return "live"
    if api_key.startswith(("sk_test_", "rk_test_")):
        return "test"
    return "unknown"


def init_payment_gateway(app: Any, gateway: Any = None) -> None:
    """
    Attach the payment gateway to ``app.extensions["payment_gateway"]``.

    Tests pass their own gateway; otherwise a Stripe gateway is built from
    config. A missing secret key still installs the gateway so webhook
    verification keeps working; checkout calls will fail as DependencyError.
    """
    if gateway is None:
        from zonta.services.gateway import StripeGateway

        api_key = (app.config.get("STRIPE_SECRET_KEY") or "").strip()
        gateway = StripeGateway(
            api_key=api_key,
            webhook_secret=(app.config.get("STRIPE_WEBHOOK_SECRET") or "").strip(),
            tolerance=int(app.config.get("STRIPE_WEBHOOK_TOLERANCE", 300)),
        )
        if not api_key:
            app.logger.warning("Stripe NOT configured: missing STRIPE_SECRET_KEY")
        else:
            app.logger.info("Stripe gateway ready (%s mode)", _guess_stripe_mode(api_key))

    app.extensions["payment_gateway"] = gateway


def get_payment_gateway(app: Any) -> Any:
    gw = app.extensions.get("payment_gateway")
    if gw is None:
        raise RuntimeError("Payment gateway not initialized; call init_payment_gateway(app)")
    return gw


__all__ = [
    "db",
    "migrate",
    "mail",
    "login_manager",
    "csrf",
    "cors",
    "run_bg",
    "safe_commit",
    "send_email_async",
    "init_payment_gateway",
    "get_payment_gateway",
]
