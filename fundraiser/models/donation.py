from __future__ import annotations

import uuid as _uuid
from typing import Any, Dict, Optional

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from fundraiser.extensions import db

from .mixins import PaymentRefMixin, TimestampMixin
from .status import RecordStatus


class Donation(db.Model, TimestampMixin, PaymentRefMixin):
    """
    A one-off gift. Donations have no pending row: the row is written when the
    provider confirms payment, keyed by the provider id so redelivery cannot
    create a second one.
    """

    __tablename__ = "donations"
    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_donations_amount_pos"),
        CheckConstraint("status in ('PAID','REFUNDED')", name="ck_donations_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(_uuid.uuid4()))
    amount_cents: Mapped[int] = mapped_column(nullable=False, doc="Donation amount in cents")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=RecordStatus.PAID.value, index=True)

    donor_given_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    donor_surname: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    donor_email: Mapped[Optional[str]] = mapped_column(String(160), nullable=True, index=True)

    @property
    def state(self) -> RecordStatus:
        return RecordStatus(self.status)

    @property
    def amount_dollars(self) -> float:
        return round((self.amount_cents or 0) / 100.0, 2)

    @property
    def donor_name(self) -> str:
        parts = [p for p in (self.donor_given_name, self.donor_surname) if p]
        return " ".join(parts) or "Anonymous"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amountCents": int(self.amount_cents),
            "amountDollars": self.amount_dollars,
            "currency": self.currency,
            "status": self.status,
            "donorName": self.donor_name,
            "donorEmail": self.donor_email,
            "payment": self.payment_ref_dict(),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Donation {self.id} ${self.amount_dollars:,.2f}>"
