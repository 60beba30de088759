from __future__ import annotations

# -----------------------------------------------------------------------------
# Mulch Order Model
# Cents-based line (quantity x unit price), one customer per order, and the
# provider payment reference written once on the PENDING -> PAID transition.
# -----------------------------------------------------------------------------
import uuid as _uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fundraiser.extensions import db

from .mixins import PaymentRefMixin, TimestampMixin
from .status import RecordStatus, STATUS_VALUES

if TYPE_CHECKING:
    from .customer import Customer

MULCH_COLORS = ("BLACK", "BROWN")


def _new_id() -> str:
    return str(_uuid.uuid4())


class MulchOrder(db.Model, TimestampMixin, PaymentRefMixin):
    __tablename__ = "mulch_orders"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_mulch_orders_quantity_pos"),
        CheckConstraint("price_per_unit_cents >= 0", name="ck_mulch_orders_price_nonneg"),
        CheckConstraint(
            "status in ('PENDING','PAID','FULFILLED','CANCELLED','REFUNDED')",
            name="ck_mulch_orders_status",
        ),
        Index("ix_mulch_orders_status_created", "status", "created_at"),
    )

    # ---- Identifiers ----
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)

    # ---- Line ----
    quantity: Mapped[int] = mapped_column(nullable=False)
    price_per_unit_cents: Mapped[int] = mapped_column(
        nullable=False,
        doc="Unit price agreed at submission time, in cents",
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    order_type: Mapped[str] = mapped_column(String(20), nullable=False, doc="DELIVERY / SPREAD")
    color: Mapped[str] = mapped_column(String(20), nullable=False, doc="BLACK / BROWN")

    # ---- Delivery ----
    street_address: Mapped[str] = mapped_column(String(255), nullable=False)
    neighborhood: Mapped[str] = mapped_column(String(120), nullable=False, index=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    referral_source: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    referral_source_details: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # ---- Lifecycle ----
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RecordStatus.PENDING.value,
        index=True,
        doc="One of " + ", ".join(STATUS_VALUES),
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    # ---- Relationships ----
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False, index=True)
    customer: Mapped["Customer"] = relationship("Customer", back_populates="orders", lazy="joined")

    # ==========================================================
    # Computed Properties
    # ==========================================================
    @property
    def state(self) -> RecordStatus:
        return RecordStatus(self.status)

    @property
    def total_cents(self) -> int:
        return int(self.quantity or 0) * int(self.price_per_unit_cents or 0)

    @property
    def total_dollars(self) -> float:
        return round(self.total_cents / 100.0, 2)

    @property
    def is_spread(self) -> bool:
        return self.order_type == "SPREAD"

    # ==========================================================
    # Serialization
    # ==========================================================
    def as_dict(self, include_customer: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "quantity": int(self.quantity),
            "pricePerUnitCents": int(self.price_per_unit_cents),
            "totalCents": self.total_cents,
            "currency": self.currency,
            "orderType": self.order_type,
            "color": self.color,
            "streetAddress": self.street_address,
            "neighborhood": self.neighborhood,
            "note": self.note,
            "referralSource": self.referral_source,
            "referralSourceDetails": self.referral_source_details,
            "status": self.status,
            "payment": self.payment_ref_dict(),
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
        if include_customer and self.customer:
            data["customer"] = self.customer.as_dict()
        return data

    def __repr__(self) -> str:  # pragma: no cover
        return f"<MulchOrder {self.id} qty={self.quantity} status={self.status}>"
