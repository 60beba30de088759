import atexit
import logging
import os
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from flask_mail import Mail, Message
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import DeclarativeBase

log = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


# ─────────────────────────────────────────────────────────────
# Core singletons
# ─────────────────────────────────────────────────────────────
db = SQLAlchemy(model_class=Base)
migrate = Migrate()
mail = Mail()


# ─────────────────────────────────────────────────────────────
# Background tasks + clean shutdown
# ─────────────────────────────────────────────────────────────
_BG_MAX_WORKERS = int(os.getenv("BG_MAX_WORKERS", "4"))
_EXECUTOR = ThreadPoolExecutor(max_workers=_BG_MAX_WORKERS)


def run_bg(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
    return _EXECUTOR.submit(func, *args, **kwargs)


@atexit.register
def _shutdown_executor() -> None:
    _EXECUTOR.shutdown(wait=False, cancel_futures=True)


# ─────────────────────────────────────────────────────────────
# Email helper
# ─────────────────────────────────────────────────────────────
def send_email_async(
    app: Any,
    subject: str,
    recipients: List[str],
    *,
    body: str,
    sender: Optional[str] = None,
    max_retries: int = 2,
    retry_backoff: float = 0.5,
) -> Future:
    def _job() -> bool:
        # Always run inside an app context
        with app.app_context():
            logger = getattr(app, "logger", log)
            msg = Message(
                subject=subject,
                recipients=recipients,
                sender=sender or app.config.get("DEFAULT_MAIL_SENDER"),
                body=body,
            )
            attempts = 0
            while True:
                try:
                    mail.send(msg)
                    return True
                except Exception as e:
                    attempts += 1
                    if attempts > max_retries:
                        logger.error("Email send permanently failed: %s", e, exc_info=True)
                        return False
                    logger.warning(
                        "Mail send failed (attempt %s/%s): %s",
                        attempts,
                        max_retries,
                        e,
                    )
                    time.sleep(float(retry_backoff) * attempts)

    return run_bg(_job)


# ─────────────────────────────────────────────────────────────
# Payment gateways (constructed once per app)
# ─────────────────────────────────────────────────────────────
def init_gateways(app: Any) -> None:
    from fundraiser.services.payments import PayPalGateway, StripeGateway

    api_key = app.config.get("STRIPE_SECRET_KEY") or ""
    if not api_key:
        app.logger.warning("Stripe NOT configured: missing STRIPE_SECRET_KEY")

    app.extensions["stripe_gateway"] = StripeGateway(
        secret_key=api_key,
        webhook_secret=app.config.get("STRIPE_WEBHOOK_SECRET") or "",
        currency=app.config.get("DEFAULT_CURRENCY") or "usd",
        max_network_retries=int(app.config.get("STRIPE_MAX_NETWORK_RETRIES") or 2),
    )
    app.extensions["paypal_gateway"] = PayPalGateway(
        client_id=app.config.get("PAYPAL_CLIENT_ID") or "",
        secret=app.config.get("PAYPAL_SECRET") or "",
        env=app.config.get("PAYPAL_ENV") or "sandbox",
        timeout=int(app.config.get("PAYPAL_TIMEOUT") or 15),
    )
    if api_key:
        app.logger.info("Stripe gateway ready (%s mode)", app.extensions["stripe_gateway"].mode)


# ─────────────────────────────────────────────────────────────
# Init all extensions
# ─────────────────────────────────────────────────────────────
def init_all_extensions(app: Any) -> None:
    db.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)

    init_gateways(app)


__all__ = [
    "Base",
    "db",
    "migrate",
    "mail",
    "run_bg",
    "send_email_async",
    "init_gateways",
    "init_all_extensions",
]
