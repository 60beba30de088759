from __future__ import annotations

from fundraiser.models.customer import Customer
from fundraiser.models.donation import Donation
from fundraiser.models.mulch_order import MULCH_COLORS, MulchOrder
from fundraiser.models.payment_ref import LegacyPaymentRef, PaymentRef, StripePaymentRef
from fundraiser.models.status import PAID_OR_LATER, REVENUE_STATUSES, RecordStatus
from fundraiser.models.stripe_event import StripeEvent

__all__ = [
    "Customer",
    "Donation",
    "LegacyPaymentRef",
    "MULCH_COLORS",
    "MulchOrder",
    "PAID_OR_LATER",
    "PaymentRef",
    "REVENUE_STATUSES",
    "RecordStatus",
    "StripeEvent",
    "StripePaymentRef",
]
