# fundraiser/models/mixins.py
"""Shared SQLAlchemy mixins for timestamps and provider payment references."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from .payment_ref import PaymentRef, payment_ref_from_columns


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    """Adds created_at and updated_at columns with auto-refresh behavior."""

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)


class PaymentRefMixin:
    """PayPal (legacy) and Stripe (current) reference columns; at most one set is populated."""

    # ---- PayPal (legacy) ----
    paypal_order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, unique=True)
    paypal_payer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    paypal_payment_source: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    # ---- Stripe Checkout ----
    stripe_session_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    @property
    def payment_ref(self) -> PaymentRef:
        return payment_ref_from_columns(self)

    @property
    def payment_provider(self) -> Optional[str]:
        ref = self.payment_ref
        return ref.provider if ref else None

    def payment_ref_dict(self) -> Optional[dict]:
        ref = self.payment_ref
        if ref is None:
            return None
        return {"provider": ref.provider, **ref.as_columns()}
