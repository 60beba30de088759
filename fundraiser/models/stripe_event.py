from __future__ import annotations

from typing import Optional

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fundraiser.extensions import db
from fundraiser.models.mixins import TimestampMixin

EVENT_RECEIVED = "received"
EVENT_PROCESSED = "processed"
EVENT_IGNORED = "ignored"
EVENT_FAILED = "failed"
EVENT_NEEDS_RECONCILIATION = "needs_reconciliation"

# A delivery of an event already in one of these states is acknowledged without re-dispatch.
SETTLED_EVENT_STATES = frozenset({EVENT_PROCESSED, EVENT_IGNORED, EVENT_NEEDS_RECONCILIATION})


class StripeEvent(db.Model, TimestampMixin):
    __tablename__ = "stripe_events"
    __table_args__ = (
        Index("ix_stripe_events_type_created", "type", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    event_id: Mapped[str] = mapped_column(
        String(120),
        unique=True,
        index=True,
        nullable=False,
        doc="Stripe event id (evt_...)",
    )

    type: Mapped[str] = mapped_column(
        String(120),
        index=True,
        nullable=False,
        doc="Stripe event type (checkout.session.completed, etc)",
    )

    livemode: Mapped[bool] = mapped_column(nullable=False, default=False)

    object_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        doc="Checkout session id (cs_...) when the event carries one",
    )

    status: Mapped[str] = mapped_column(String(40), nullable=False, default=EVENT_RECEIVED, index=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def settled(self) -> bool:
        return self.status in SETTLED_EVENT_STATES
