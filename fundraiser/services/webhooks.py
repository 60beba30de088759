# fundraiser/services/webhooks.py
"""
Webhook Ingestor: the authoritative payment-completion path.

verify signature -> record event in the stripe_events ledger -> dispatch.

Response contract (consumed by the provider's retry logic):
  200 {"received": true}   processed, ignored, duplicate, or flagged for reconciliation
  400 {"error": "..."}     bad signature, malformed payload, rejected confirmation
  500 {"error": "..."}     unexpected failure; the provider redelivers later
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError, OperationalError

from fundraiser.extensions import db
from fundraiser.models import RecordStatus, StripeEvent
from fundraiser.models.mixins import utcnow
from fundraiser.models.stripe_event import (
    EVENT_FAILED,
    EVENT_IGNORED,
    EVENT_NEEDS_RECONCILIATION,
    EVENT_PROCESSED,
    EVENT_RECEIVED,
)
from fundraiser.services.errors import InvalidSignature, InvalidTransition, PaymentError
from fundraiser.services.lifecycle import OrderLifecycle, PaymentConfirmation
from fundraiser.services.payments import (
    CHECKOUT_ASYNC_SUCCEEDED,
    CHECKOUT_COMPLETED,
    RECORD_TYPE_DONATION,
    RECORD_TYPE_ORDER,
    SessionDetails,
    StripeGateway,
    WebhookEvent,
)

log = logging.getLogger(__name__)

PAYMENT_EVENT_TYPES = frozenset({CHECKOUT_COMPLETED, CHECKOUT_ASYNC_SUCCEEDED})


@dataclass(frozen=True)
class WebhookResult:
    status_code: int
    body: Dict[str, Any] = field(default_factory=lambda: {"received": True})
    outcome: Optional[str] = None

    @classmethod
    def ok(cls, outcome: str, **extra: Any) -> "WebhookResult":
        return cls(200, {"received": True, **extra}, outcome)

    @classmethod
    def error(cls, status_code: int, message: str, outcome: Optional[str] = None) -> "WebhookResult":
        return cls(status_code, {"error": message}, outcome)


def _retry_on_db_lock(fn, *, attempts: int = 6):
    """SQLite under concurrent deliveries reports 'database is locked'; back off and retry."""
    for i in range(attempts):
        try:
            return fn()
        except OperationalError as e:
            db.session.rollback()
            if "locked" in str(e).lower() and i < attempts - 1:
                time.sleep(0.05 * (i + 1))
                continue
            raise


class WebhookIngestor:
    def __init__(self, gateway: StripeGateway, lifecycle: OrderLifecycle):
        self.gateway = gateway
        self.lifecycle = lifecycle

    def handle(self, raw_body: bytes, signature: Optional[str]) -> WebhookResult:
        try:
            event = self.gateway.parse_webhook_event(raw_body, signature)
        except InvalidSignature as e:
            log.warning("webhook: rejected delivery: %s", e.message)
            return WebhookResult.error(400, e.message)
        except ValueError:
            log.warning("webhook: verified payload is not a JSON object")
            return WebhookResult.error(400, "Malformed webhook payload")

        if not event.event_id:
            return WebhookResult.error(400, "Webhook event has no id")

        try:
            row = _retry_on_db_lock(lambda: self._ledger_row(event))
        except Exception:
            db.session.rollback()
            log.exception("webhook: failed to record event %s (will retry)", event.event_id)
            return WebhookResult.error(500, "Could not record event")

        if row.settled:
            log.info("webhook: event %s already %s; acknowledging duplicate", event.event_id, row.status)
            return WebhookResult.ok(row.status, duplicate=True)

        try:
            outcome = self._dispatch(event)
        except InvalidTransition as e:
            db.session.rollback()
            if e.current == RecordStatus.CANCELLED.value:
                # Payment arrived for an order the buyer already cancelled; a human decides.
                log.warning(
                    "webhook: event %s paid for cancelled record (%s); flagged for reconciliation",
                    event.event_id,
                    event.object_id,
                )
                self._settle(event.event_id, EVENT_NEEDS_RECONCILIATION, e.message)
                return WebhookResult.ok(EVENT_NEEDS_RECONCILIATION)
            self._settle(event.event_id, EVENT_FAILED, e.message)
            return WebhookResult.error(400, e.message, EVENT_FAILED)
        except PaymentError as e:
            db.session.rollback()
            log.warning("webhook: event %s rejected: %s", event.event_id, e.message)
            self._settle(event.event_id, EVENT_FAILED, e.message)
            return WebhookResult.error(400, e.message, EVENT_FAILED)
        except Exception as e:
            db.session.rollback()
            log.exception("webhook: processing event %s failed (will retry)", event.event_id)
            self._settle(event.event_id, EVENT_FAILED, f"{type(e).__name__}: {e}")
            return WebhookResult.error(500, "Webhook processing failed", EVENT_FAILED)

        self._settle(event.event_id, outcome, None)
        return WebhookResult.ok(outcome)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    def _dispatch(self, event: WebhookEvent) -> str:
        if event.type not in PAYMENT_EVENT_TYPES:
            log.info("webhook: unhandled event type %s (%s)", event.type, event.event_id)
            return EVENT_IGNORED

        details = SessionDetails.from_stripe(event.data_object)
        if not details.session_id:
            raise PaymentError("Checkout event carries no session id")
        if not details.is_paid:
            # Delayed payment methods: the async_payment_succeeded event follows.
            log.info("webhook: session %s completed with payment_status=%s", details.session_id, details.payment_status)
            return EVENT_IGNORED

        if details.record_type == RECORD_TYPE_DONATION:
            donation, created = self.lifecycle.record_donation(details)
            log.info(
                "webhook: donation %s %s from session %s",
                donation.id,
                "recorded" if created else "already recorded",
                details.session_id,
            )
            return EVENT_PROCESSED

        if details.record_type == RECORD_TYPE_ORDER and details.record_id:
            result = self.lifecycle.mark_paid(details.record_id, PaymentConfirmation.from_session(details))
            log.info(
                "webhook: order %s %s from session %s",
                result.order.id,
                "marked PAID" if result.changed else "already paid",
                details.session_id,
            )
            return EVENT_PROCESSED

        log.warning(
            "webhook: session %s has unknown checkout type %r; ignoring",
            details.session_id,
            details.record_type or None,
        )
        return EVENT_IGNORED

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------
    def _ledger_row(self, event: WebhookEvent) -> StripeEvent:
        row = db.session.execute(
            select(StripeEvent)
            .where(StripeEvent.event_id == event.event_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if row is not None:
            return row

        row = StripeEvent(
            event_id=event.event_id[:120],
            type=event.type[:120],
            livemode=event.livemode,
            object_id=(event.object_id[:255] if event.object_id else None),
            status=EVENT_RECEIVED,
        )
        db.session.add(row)
        try:
            db.session.commit()
        except IntegrityError:
            # Concurrent delivery of the same event inserted first.
            db.session.rollback()
            row = db.session.execute(
                select(StripeEvent).where(StripeEvent.event_id == event.event_id)
            ).scalar_one()
        return row

    def _settle(self, event_id: str, status: str, error: Optional[str]) -> None:
        def _do():
            db.session.execute(
                sa_update(StripeEvent)
                .where(StripeEvent.event_id == event_id)
                .values(status=status, error=(error[:2000] if error else None), updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            db.session.commit()

        try:
            _retry_on_db_lock(_do)
        except Exception:
            db.session.rollback()
            log.exception("webhook: could not mark event %s as %s", event_id, status)


__all__ = ["PAYMENT_EVENT_TYPES", "WebhookIngestor", "WebhookResult"]
