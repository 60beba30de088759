# fundraiser/__init__.py
# Mulch fundraiser: Flask app factory
# - deterministic config resolution (FLASK_CONFIG / env mode)
# - proxy-correct (reverse proxy / tunnel)
# - JSON error shape everywhere: {"ok": false, "error": "..."}

from __future__ import annotations

import logging
import os
import time
from typing import Any, Optional, Type, Union
from uuid import uuid4

from dotenv import load_dotenv
from flask import Flask, g, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

# IMPORTANT: never override real env vars in prod
load_dotenv(override=False)

from fundraiser.blueprints import json_error, json_response  # noqa: E402
from fundraiser.config import CONFIG_BY_NAME  # noqa: E402
from fundraiser.extensions import db, init_all_extensions  # noqa: E402
from fundraiser.services.errors import PaymentError  # noqa: E402
from fundraiser.services.intake import IntakeError  # noqa: E402
from fundraiser.services.notifications import OrderNotifier  # noqa: E402

ConfigLike = Union[str, Type[Any]]

WEBHOOK_PATH = "/payments/stripe/webhook"


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
        v = str(app.config.get("ENV") or "").strip().lower()
        if v and v not in {"?", "base"}:
            return v

    for key in ("APP_ENV", "ENV", "FLASK_ENV"):
        val = (os.getenv(key) or "").strip().lower()
        if val:
            if val == "prod":
                return "production"
            if val == "dev":
                return "development"
            return val

    return "development"


def _resolve_config(target: Optional[ConfigLike]) -> ConfigLike:
    """
    Choose config class/module path.
    - If explicitly provided, respect it (a class, a dotted path, or a short name).
    - Else if FLASK_CONFIG is set, use it.
    - Else ProductionConfig when env indicates production; otherwise DevelopmentConfig.
    """
    if target is None:
        target = (os.getenv("FLASK_CONFIG") or "").strip() or None

    if target is None:
        return CONFIG_BY_NAME["production" if _env_mode(None) == "production" else "development"]

    if isinstance(target, str) and target.lower() in CONFIG_BY_NAME:
        return CONFIG_BY_NAME[target.lower()]
    return target


# -----------------------------------------------------------------------------
# Logging with request_id
# -----------------------------------------------------------------------------
class _RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            record.request_id = getattr(g, "request_id", "-")
        except RuntimeError:
            # outside an app/request context (CLI, background mail)
            record.request_id = "-"
        return True


def _configure_logging(app: Flask) -> None:
    fmt = "%(asctime)s %(levelname)s [%(name)s] [rid=%(request_id)s] %(message)s"
    root = logging.getLogger()

    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt))
        handler.addFilter(_RequestIDFilter())
        root.addHandler(handler)
    else:
        for h in root.handlers:
            h.addFilter(_RequestIDFilter())

    root.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    logging.getLogger("werkzeug").setLevel(str(app.config.get("WERKZEUG_LOG_LEVEL", "WARNING")).upper())
    app.logger.info("Loaded config: ENV=%s DEBUG=%s", app.config.get("ENV", "?"), app.debug)


# -----------------------------------------------------------------------------
# ProxyFix (reverse proxy / tunnel)
# -----------------------------------------------------------------------------
def _apply_proxyfix(app: Flask) -> None:
    trust = _env_bool("TRUST_PROXY")
    if trust is None:
        trust = bool(app.config.get("TRUST_PROXY", False))
    if not trust:
        return

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)
    app.logger.info("ProxyFix enabled (trusting X-Forwarded-* headers).")


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
    @app.errorhandler(PaymentError)
    def _payment_err(err: PaymentError):
        if err.http_status >= 500:
            app.logger.error("%s: %s", err.code, err.message)
        else:
            app.logger.info("%s: %s", err.code, err.message)
        extra = {"code": err.code, **{k: v for k, v in err.extra.items() if v is not None}}
        return json_error(err.message, err.http_status, extra)

    @app.errorhandler(IntakeError)
    def _intake_err(err: IntakeError):
        return json_error(err.message, 400, {"fieldErrors": err.field_errors})

    @app.errorhandler(HTTPException)
    def _http_err(err: HTTPException):
        return json_error(err.description or err.name, err.code or 500)

    @app.errorhandler(Exception)
    def _uncaught(err: Exception):
        app.logger.exception("Unhandled error")
        db.session.rollback()
        if (request.path or "").startswith(WEBHOOK_PATH):
            return json_response({"error": "Webhook processing failed"}, 500)
        return json_error("Internal server error", 500)


def _register_blueprints(app: Flask) -> None:
    from fundraiser.blueprints.admin import bp as admin_bp
    from fundraiser.blueprints.donations import bp as donations_bp
    from fundraiser.blueprints.orders import bp as orders_bp
    from fundraiser.blueprints.payments import bp as payments_bp

    for bp in (payments_bp, orders_bp, donations_bp, admin_bp):
        app.register_blueprint(bp)


def _register_health_endpoints(app: Flask) -> None:
    @app.get("/healthz")
    def _healthz():
        return {
            "status": "ok",
            "env": app.config.get("ENV", "unknown"),
            "request_id": getattr(g, "request_id", "-"),
        }


# -----------------------------------------------------------------------------
# App Factory
# -----------------------------------------------------------------------------
def create_app(config_class: Optional[ConfigLike] = None) -> Flask:
    app = Flask(__name__)

    # ---- Config loading
    cfg = _resolve_config(config_class)
    app.config.from_object(cfg)
    init_hook = getattr(cfg, "init_app", None)
    if callable(init_hook):
        init_hook(app)

    env = _env_mode(app)
    if not app.config.get("ENV") or str(app.config.get("ENV")).strip() in {"", "?", "base"}:
        app.config["ENV"] = env

    app.url_map.strict_slashes = False
    app.config.setdefault("JSON_SORT_KEYS", False)
    app.config.setdefault("PROPAGATE_EXCEPTIONS", False)
    app.config.setdefault("AUTO_CREATE_SQLITE", env != "production")

    # ---- Proxy handling first
    _apply_proxyfix(app)
    _configure_logging(app)

    # ---- Core extensions + gateways
    init_all_extensions(app)
    app.extensions["order_notifier"] = OrderNotifier(app)
    if not app.testing:
        _maybe_create_sqlite_tables(app)

    # ---- Request lifecycle / errors / routes
    _register_request_lifecycle(app)
    _register_error_handlers(app)
    _register_blueprints(app)
    _register_health_endpoints(app)

    # ---- CLI
    from fundraiser.cli import orders_cli

    app.cli.add_command(orders_cli)

    return app


__all__ = ["create_app"]
