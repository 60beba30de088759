"""
Checkout Return Handler: best-effort confirmation when the buyer's browser
comes back from hosted checkout. The webhook remains responsible for eventual
correctness; this path only shortens the wait.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from fundraiser.models import Donation, MulchOrder, RecordStatus
from fundraiser.services.errors import InvalidTransition
from fundraiser.services.lifecycle import OrderLifecycle, PaymentConfirmation
from fundraiser.services.order_store import OrderStore
from fundraiser.services.payments import StripeGateway

log = logging.getLogger(__name__)

STATE_PAID = "paid"
STATE_PENDING = "pending"
STATE_CANCELLED = "cancelled"
STATE_REFUNDED = "refunded"

_STATE_BY_STATUS = {
    RecordStatus.PAID: STATE_PAID,
    RecordStatus.FULFILLED: STATE_PAID,
    RecordStatus.CANCELLED: STATE_CANCELLED,
    RecordStatus.REFUNDED: STATE_REFUNDED,
}


@dataclass(frozen=True)
class ReturnOutcome:
    state: str
    record: Optional[Union[MulchOrder, Donation]]

    @property
    def is_paid(self) -> bool:
        return self.state == STATE_PAID


class CheckoutReturnHandler:
    def __init__(self, store: OrderStore, gateway: StripeGateway, lifecycle: OrderLifecycle):
        self.store = store
        self.gateway = gateway
        self.lifecycle = lifecycle

    def confirm_order_return(self, order_id: str, session_id: Optional[str]) -> ReturnOutcome:
        order = self.store.get_order(order_id)
        settled = _STATE_BY_STATUS.get(order.state)
        if settled is not None:
            return ReturnOutcome(settled, order)

        if not session_id:
            return ReturnOutcome(STATE_PENDING, order)

        details = self.gateway.verify_session_paid(session_id)
        if details is None:
            log.info("return: order %s session %s not paid yet", order.id, session_id)
            return ReturnOutcome(STATE_PENDING, order)

        try:
            result = self.lifecycle.mark_paid(order.id, PaymentConfirmation.from_session(details))
        except InvalidTransition:
            # Cancelled between our read and the write; report what is stored.
            order = self.store.get_order(order.id)
            return ReturnOutcome(_STATE_BY_STATUS.get(order.state, STATE_PENDING), order)

        if result.changed:
            log.info("return: order %s confirmed by browser return (session %s)", order.id, session_id)
        return ReturnOutcome(STATE_PAID, result.order)

    def confirm_donation_return(self, session_id: Optional[str]) -> ReturnOutcome:
        if not session_id:
            return ReturnOutcome(STATE_PENDING, None)

        existing = self.store.get_donation_by_session_id(session_id)
        if existing is not None:
            return ReturnOutcome(_STATE_BY_STATUS.get(existing.state, STATE_PAID), existing)

        details = self.gateway.verify_session_paid(session_id)
        if details is None:
            return ReturnOutcome(STATE_PENDING, None)

        donation, created = self.lifecycle.record_donation(details)
        if created:
            log.info("return: donation %s recorded by browser return (session %s)", donation.id, session_id)
        return ReturnOutcome(STATE_PAID, donation)


__all__ = [
    "CheckoutReturnHandler",
    "ReturnOutcome",
    "STATE_CANCELLED",
    "STATE_PAID",
    "STATE_PENDING",
    "STATE_REFUNDED",
]
