# fundraiser/models/payment_ref.py
"""
Provider payment references.

A purchasable record carries at most one of two reference shapes over its life:
the legacy PayPal shape or the current Stripe Checkout shape. Both are empty
while the record is pending.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

LEGACY_COLUMNS = ("paypal_order_id", "paypal_payer_id", "paypal_payment_source")
STRIPE_COLUMNS = ("stripe_session_id", "stripe_payment_intent_id", "stripe_customer_id")
ALL_REF_COLUMNS = LEGACY_COLUMNS + STRIPE_COLUMNS


@dataclass(frozen=True)
class LegacyPaymentRef:
    order_id: str
    payer_id: Optional[str]
    payment_source: str

    provider = "paypal"

    def __post_init__(self) -> None:
        if not (self.order_id or "").strip():
            raise ValueError("LegacyPaymentRef requires a PayPal order id")
        if not (self.payment_source or "").strip():
            raise ValueError("LegacyPaymentRef requires a payment source")

    def as_columns(self) -> Dict[str, Optional[str]]:
        return {
            "paypal_order_id": self.order_id,
            "paypal_payer_id": self.payer_id,
            "paypal_payment_source": self.payment_source,
        }


@dataclass(frozen=True)
class StripePaymentRef:
    session_id: str
    payment_intent_id: Optional[str]
    customer_id: Optional[str]

    provider = "stripe"

    def __post_init__(self) -> None:
        if not (self.session_id or "").strip():
            raise ValueError("StripePaymentRef requires a checkout session id")

    def as_columns(self) -> Dict[str, Optional[str]]:
        return {
            "stripe_session_id": self.session_id,
            "stripe_payment_intent_id": self.payment_intent_id,
            "stripe_customer_id": self.customer_id,
        }


PaymentRef = Union[LegacyPaymentRef, StripePaymentRef, None]


def payment_ref_from_columns(row: Any) -> PaymentRef:
    """Rebuild the reference held by a row; raises if both shapes are populated."""
    legacy = any(getattr(row, c, None) for c in LEGACY_COLUMNS)
    current = any(getattr(row, c, None) for c in STRIPE_COLUMNS)
    if legacy and current:
        raise ValueError(f"record {getattr(row, 'id', '?')} carries both PayPal and Stripe references")
    if legacy:
        return LegacyPaymentRef(
            order_id=row.paypal_order_id,
            payer_id=row.paypal_payer_id,
            payment_source=row.paypal_payment_source,
        )
    if current:
        return StripePaymentRef(
            session_id=row.stripe_session_id,
            payment_intent_id=row.stripe_payment_intent_id,
            customer_id=row.stripe_customer_id,
        )
    return None
