# fundraiser/config/config.py
# Canonical fundraiser configuration (env-first, production-safe)

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional


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
    except Exception:
        return default


def _cents(name: str, default: int) -> int:
    """Read a dollar amount (e.g. ``7`` or ``7.50``) and return integer cents."""
    v = _env(name)
    if v is None:
        return default
    try:
        dollars = Decimal(v)
    except InvalidOperation:
        return default
    return int((dollars * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _csv(name: str, default: str = "") -> List[str]:
    raw = _env(name, default) or ""
    return [p.strip() for p in raw.split(",") if p.strip()]


def _clean_base_url(v: Optional[str]) -> str:
    s = (v or "").strip().rstrip("/")
    return s


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

    # Security
    SECRET_KEY = _env("SECRET_KEY", "dev-change-me")

    # URLs / scheme
    PUBLIC_BASE_URL = _clean_base_url(_env("PUBLIC_BASE_URL", ""))
    PREFERRED_URL_SCHEME = _env("PREFERRED_URL_SCHEME", "https")
    TRUST_PROXY = _bool("TRUST_PROXY", False)

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = _env("SQLALCHEMY_DATABASE_URI", _env("DATABASE_URL", "sqlite:///fundraiser-dev.db"))
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Money
    DEFAULT_CURRENCY = (_env("DEFAULT_CURRENCY", "usd") or "usd").lower()
    MIN_DONATION_CENTS = _int("MIN_DONATION_CENTS", 100)

    # Stripe (current provider)
    STRIPE_SECRET_KEY = _env("STRIPE_SECRET_KEY", _env("STRIPE_API_KEY", ""))
    STRIPE_PUBLISHABLE_KEY = _env("STRIPE_PUBLISHABLE_KEY", "")
    STRIPE_WEBHOOK_SECRET = _env("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_MAX_NETWORK_RETRIES = _int("STRIPE_MAX_NETWORK_RETRIES", 2)

    # PayPal (legacy provider)
    PAYPAL_CLIENT_ID = _env("PAYPAL_CLIENT_ID", "")
    PAYPAL_SECRET = _env("PAYPAL_SECRET", "")
    PAYPAL_ENV = (_env("PAYPAL_ENV", "sandbox") or "sandbox").lower()
    PAYPAL_TIMEOUT = _int("PAYPAL_TIMEOUT", 15)

    # Ward / fundraiser
    WARD_NAME = _env("WARD_NAME", "Crossroads Ward")
    WARD_CONTACT_EMAIL = _env("WARD_CONTACT_EMAIL", "youth@example.org")
    WARD_NEIGHBORHOODS = _csv("WARD_NEIGHBORHOODS", "")
    MULCH_PRICE_DELIVERY_CENTS = _cents("MULCH_PRICE_DELIVERY", 700)
    MULCH_PRICE_SPREAD_CENTS = _cents("MULCH_PRICE_SPREAD", 900)
    ACCEPTING_MULCH_ORDERS = _bool("ACCEPTING_MULCH_ORDERS", True)
    MULCH_DELIVERY_DATE_1 = _env("MULCH_DELIVERY_DATE_1", "")
    MULCH_DELIVERY_DATE_2 = _env("MULCH_DELIVERY_DATE_2", "")
    STALE_PENDING_DAYS = _int("STALE_PENDING_DAYS", 30)

    # Admin API
    ADMIN_API_TOKENS = _env("ADMIN_API_TOKENS", "")

    # Mail
    MAIL_ENABLED = _bool("MAIL_ENABLED", False)
    MAIL_SERVER = _env("MAIL_SERVER", "localhost")
    MAIL_PORT = _int("MAIL_PORT", 25)
    MAIL_USE_TLS = _bool("MAIL_USE_TLS", False)
    MAIL_USERNAME = _env("MAIL_USERNAME")
    MAIL_PASSWORD = _env("MAIL_PASSWORD")
    DEFAULT_MAIL_SENDER = _env("DEFAULT_MAIL_SENDER", WARD_CONTACT_EMAIL)

    @classmethod
    def init_app(cls, app) -> None:
        """
        Optional hook for factory boot hardening.
        Call this from create_app() after app.config.from_object(...)
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

    PREFERRED_URL_SCHEME = _env("PREFERRED_URL_SCHEME", "http")


class TestingConfig(BaseConfig):
    ENV = "testing"
    TESTING = True
    DEBUG = False

    SQLALCHEMY_DATABASE_URI = "sqlite://"
    PUBLIC_BASE_URL = "https://fundraiser.test"
    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_PUBLISHABLE_KEY = "pk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    PAYPAL_CLIENT_ID = "paypal-client"
    PAYPAL_SECRET = "paypal-secret"
    WARD_NEIGHBORHOODS = ["Maple Hills", "Cedar Park", "Willow Creek"]
    MULCH_PRICE_DELIVERY_CENTS = 700
    MULCH_PRICE_SPREAD_CENTS = 900
    ACCEPTING_MULCH_ORDERS = True
    MULCH_DELIVERY_DATE_1 = "April 12"
    MULCH_DELIVERY_DATE_2 = "April 19"
    ADMIN_API_TOKENS = "test-admin-token"
    MAIL_ENABLED = False
    MAIL_SUPPRESS_SEND = True


class ProductionConfig(BaseConfig):
    ENV = "production"
    DEBUG = False

    PREFERRED_URL_SCHEME = _env("PREFERRED_URL_SCHEME", "https")
    TRUST_PROXY = _bool("TRUST_PROXY", True)

    @classmethod
    def init_app(cls, app) -> None:
        super().init_app(app)

        # ---- Production guardrails (fail fast) ----
        sk = app.config.get("SECRET_KEY")
        if not sk or sk == "dev-change-me":
            raise RuntimeError("SECRET_KEY must be set to a strong random value in production.")

        base = (app.config.get("PUBLIC_BASE_URL") or "").strip()
        if base and base.startswith("http://"):
            raise RuntimeError("PUBLIC_BASE_URL must be https:// in production.")

        if not app.config.get("STRIPE_WEBHOOK_SECRET"):
            raise RuntimeError("STRIPE_WEBHOOK_SECRET must be set in production.")

        if _bool("FLASK_DEBUG", False):
            raise RuntimeError("FLASK_DEBUG must be 0 in production.")
