"""Buyer submissions (order form, donation form) -> validated value objects."""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional, Sequence

from fundraiser.models import MULCH_COLORS
from fundraiser.services.order_store import CustomerIdentity, DonorInfo, OrderDetails
from fundraiser.services.reporting import REFERRAL_SOURCE_LABELS

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_QTY_RE = re.compile(r"^\d+$")

REFERRAL_SOURCES = tuple(REFERRAL_SOURCE_LABELS.keys())


class IntakeError(Exception):
    """Submission failed validation; ``field_errors`` maps form field -> message."""

    http_status = 400

    def __init__(self, field_errors: Dict[str, str]):
        self.field_errors = dict(field_errors)
        first = next(iter(self.field_errors.values()), "Invalid submission")
        super().__init__(first)
        self.message = first


def _is_email(s: str) -> bool:
    return bool(_EMAIL_RE.match(s or ""))


def _s(data: Dict[str, Any], *keys: str) -> str:
    for k in keys:
        v = data.get(k)
        if v is not None:
            return str(v).strip()
    return ""


def _truthy(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    return str(v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class OrderSubmission:
    details: OrderDetails
    customer: CustomerIdentity

    @classmethod
    def from_payload(
        cls,
        data: Dict[str, Any],
        *,
        neighborhoods: Sequence[str],
        price_delivery_cents: int,
        price_spread_cents: int,
        currency: str = "usd",
    ) -> "OrderSubmission":
        errors: Dict[str, str] = {}

        raw_qty = _s(data, "quantity")
        quantity = int(raw_qty) if _QTY_RE.match(raw_qty) else 0
        if quantity <= 0:
            errors["quantity"] = "Quantity must be a whole number of bags"

        color = _s(data, "color").upper()
        if color not in MULCH_COLORS:
            errors["color"] = "Choose a mulch color"

        should_spread = _truthy(data.get("shouldSpread", data.get("should_spread")))

        neighborhood = _s(data, "neighborhood")
        if neighborhood not in neighborhoods:
            errors["neighborhood"] = "Choose a neighborhood"

        street = _s(data, "street", "streetAddress")
        if not street:
            errors["street"] = "Street address is required"

        name = _s(data, "name")
        if not name:
            errors["name"] = "Name is required"

        email = _s(data, "email").lower()
        if not _is_email(email):
            errors["email"] = "Valid email is required"

        phone = _s(data, "phone")
        if len(re.sub(r"\D", "", phone)) < 10:
            errors["phone"] = "Phone must be at least 10 digits"

        referral = _s(data, "referralSource", "referral_source").upper() or None
        referral_details = _s(data, "referralSourceDetails", "referral_source_details") or None
        if referral is not None and referral not in REFERRAL_SOURCES:
            errors["referralSource"] = "Tell us how you heard about us"
        if referral == "OTHER" and not referral_details:
            errors["referralSourceDetails"] = "Please tell us how you heard about us"
        if referral != "OTHER":
            referral_details = None

        if errors:
            raise IntakeError(errors)

        return cls(
            details=OrderDetails(
                quantity=quantity,
                price_per_unit_cents=int(price_spread_cents if should_spread else price_delivery_cents),
                order_type="SPREAD" if should_spread else "DELIVERY",
                color=color,
                street_address=street,
                neighborhood=neighborhood,
                note=_s(data, "note") or None,
                referral_source=referral,
                referral_source_details=referral_details,
                currency=currency,
            ),
            customer=CustomerIdentity(name=name, email=email, phone=phone),
        )


@dataclass(frozen=True)
class DonationSubmission:
    amount_cents: int
    donor: DonorInfo

    @classmethod
    def from_payload(cls, data: Dict[str, Any], *, min_cents: int = 100) -> "DonationSubmission":
        errors: Dict[str, str] = {}

        amount_cents = _amount_cents(data)
        if amount_cents is None or amount_cents <= 0:
            errors["amount"] = "Please enter a valid amount"
        elif amount_cents < min_cents:
            errors["amount"] = f"Minimum donation is ${min_cents / 100:.2f}"

        email = _s(data, "donorEmail", "email").lower() or None
        if email and not _is_email(email):
            errors["donorEmail"] = "Valid email is required"

        if errors:
            raise IntakeError(errors)

        return cls(
            amount_cents=int(amount_cents),
            donor=DonorInfo(
                given_name=_s(data, "donorGivenName") or None,
                surname=_s(data, "donorSurname") or None,
                email=email,
            ),
        )


def _amount_cents(data: Dict[str, Any]) -> Optional[int]:
    """Accepts amountCents (integer cents) or amount (dollars)."""
    raw_cents = data.get("amountCents", data.get("amount_cents"))
    if raw_cents is not None and str(raw_cents).strip():
        s = str(raw_cents).strip()
        return int(s) if s.isdigit() else None

    raw = data.get("amount")
    if raw is None or not str(raw).strip():
        return None
    try:
        dollars = Decimal(str(raw).strip().replace("$", "").replace(",", ""))
    except InvalidOperation:
        return None
    if not dollars.is_finite():
        return None
    return int((dollars * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


__all__ = ["DonationSubmission", "IntakeError", "OrderSubmission", "REFERRAL_SOURCES"]
