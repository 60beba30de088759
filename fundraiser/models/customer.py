from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fundraiser.extensions import db

from .mixins import TimestampMixin

if TYPE_CHECKING:
    from .mulch_order import MulchOrder


class Customer(db.Model, TimestampMixin):
    """A buyer identity; reused only on an exact (name, email, phone) match."""

    __tablename__ = "customers"
    __table_args__ = (
        Index("ix_customers_identity", "email", "phone", "name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    email: Mapped[str] = mapped_column(String(160), nullable=False)
    phone: Mapped[str] = mapped_column(String(40), nullable=False)

    orders: Mapped[List["MulchOrder"]] = relationship("MulchOrder", back_populates="customer")

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email, "phone": self.phone}

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Customer {self.id} {self.email}>"
