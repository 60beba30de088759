"""
Order Lifecycle Manager.

PENDING -> PAID -> FULFILLED, PENDING -> CANCELLED, PAID/FULFILLED -> REFUNDED.

The PENDING -> PAID edge is reached from two directions (webhook and browser
return) that may race; it is idempotent and its write is a compare-and-set in
the store, so exactly one caller performs it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Tuple

from fundraiser.models import Donation, MulchOrder, RecordStatus
from fundraiser.models.mixins import utcnow
from fundraiser.models.payment_ref import LegacyPaymentRef, StripePaymentRef
from fundraiser.models.status import ADMIN_EDGES, PAID_OR_LATER
from fundraiser.services.errors import CorrelationMismatch, InvalidTransition, PaymentError
from fundraiser.services.order_store import DonorInfo, OrderStore
from fundraiser.services.payments import (
    RECORD_TYPE_DONATION,
    RECORD_TYPE_ORDER,
    SESSION_ID_PLACEHOLDER,
    CheckoutSession,
    LegacyOrderDetails,
    LineItem,
    PayPalGateway,
    SessionDetails,
    StripeGateway,
)

log = logging.getLogger(__name__)

ORDER_LINE_ITEM_NAME = "Bag o' Mulch"
DONATION_LINE_ITEM_NAME = "Youth Fundraiser Donation"
DONATION_LINE_ITEM_DESCRIPTION = "Thank you for supporting our youth program!"


@dataclass(frozen=True)
class PaymentConfirmation:
    """A verified statement from a provider that a record has been paid."""

    record_type: str
    record_id: Optional[str]
    payment_ref: LegacyPaymentRef | StripePaymentRef
    amount_cents: Optional[int] = None
    currency: Optional[str] = None

    @classmethod
    def from_session(cls, details: SessionDetails) -> "PaymentConfirmation":
        record_type, record_id = details.correlation()
        return cls(
            record_type=record_type,
            record_id=record_id,
            payment_ref=details.payment_ref(),
            amount_cents=details.amount_total_cents,
            currency=details.currency,
        )

    @classmethod
    def from_legacy(cls, details: LegacyOrderDetails) -> "PaymentConfirmation":
        return cls(
            record_type=RECORD_TYPE_ORDER,
            record_id=details.reference_id,
            payment_ref=details.payment_ref(),
            amount_cents=details.amount_cents,
            currency=details.currency,
        )


@dataclass(frozen=True)
class TransitionResult:
    order: MulchOrder
    changed: bool


def _split_name(full_name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    parts = (full_name or "").split()
    if not parts:
        return None, None
    return parts[0], (" ".join(parts[1:]) or None)


def order_description(order: MulchOrder) -> str:
    color = (order.color or "").capitalize()
    if order.is_spread:
        return f"{color} mulch plus mulch spreading service"
    return f"{color} mulch delivered to your house, no spreading service"


class OrderLifecycle:
    def __init__(
        self,
        store: OrderStore,
        gateway: StripeGateway,
        *,
        paypal: Optional[PayPalGateway] = None,
        notifier=None,
        min_donation_cents: int = 100,
    ):
        self.store = store
        self.gateway = gateway
        self.paypal = paypal
        self.notifier = notifier
        self.min_donation_cents = int(min_donation_cents)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------
    def start_checkout(self, order_id: str, base_url: str) -> CheckoutSession:
        order = self.store.get_order(order_id)
        if order.state != RecordStatus.PENDING:
            raise InvalidTransition(
                f"Order {order.id} is {order.status}; checkout is only available while PENDING",
                current=order.status,
                requested=RecordStatus.PAID.value,
            )

        base = base_url.rstrip("/")
        order_url = f"{base}/fundraisers/mulch/orders/{order.id}"
        session = self.gateway.create_checkout_session(
            LineItem(
                name=ORDER_LINE_ITEM_NAME,
                description=order_description(order),
                unit_amount_cents=order.price_per_unit_cents,
                quantity=order.quantity,
            ),
            success_url=f"{order_url}/return?session_id={SESSION_ID_PLACEHOLDER}",
            cancel_url=order_url,
            metadata={"type": RECORD_TYPE_ORDER, "order_id": order.id},
            customer_email=(order.customer.email if order.customer else None),
        )
        log.info("order %s: checkout session %s started", order.id, session.session_id)
        return session

    def start_donation_checkout(self, amount_cents: int, donor: Optional[DonorInfo], base_url: str) -> CheckoutSession:
        amount_cents = int(amount_cents)
        if amount_cents < self.min_donation_cents:
            raise PaymentError(
                f"Donation must be at least ${self.min_donation_cents / 100:.2f}",
                extra={"min_cents": self.min_donation_cents},
            )
        donor = donor or DonorInfo()
        base = base_url.rstrip("/")
        return self.gateway.create_checkout_session(
            LineItem(
                name=DONATION_LINE_ITEM_NAME,
                description=DONATION_LINE_ITEM_DESCRIPTION,
                unit_amount_cents=amount_cents,
                quantity=1,
            ),
            success_url=f"{base}/fundraisers/mulch/donate/thank-you?session_id={SESSION_ID_PLACEHOLDER}",
            cancel_url=f"{base}/fundraisers/mulch/donate",
            metadata={
                "type": RECORD_TYPE_DONATION,
                "donorEmail": donor.email or "",
                "donorGivenName": donor.given_name or "",
                "donorSurname": donor.surname or "",
            },
            customer_email=donor.email,
        )

    # ------------------------------------------------------------------
    # PENDING -> PAID
    # ------------------------------------------------------------------
    def mark_paid(self, order_id: str, confirmation: PaymentConfirmation) -> TransitionResult:
        order = self.store.get_order(order_id)
        self._check_correlation(order, confirmation)

        if order.state in PAID_OR_LATER:
            return TransitionResult(order, False)
        if order.state != RecordStatus.PENDING:
            raise InvalidTransition(
                f"Order {order.id} is {order.status}; a payment cannot revive it",
                current=order.status,
                requested=RecordStatus.PAID.value,
            )

        swapped = self.store.compare_and_set_status(
            order.id,
            [RecordStatus.PENDING],
            RecordStatus.PAID,
            payment_ref=confirmation.payment_ref,
        )
        order = self.store.get_order(order.id)
        if not swapped:
            # Someone else moved it between our read and our write.
            if order.state in PAID_OR_LATER:
                return TransitionResult(order, False)
            raise InvalidTransition(
                f"Order {order.id} moved to {order.status} before payment could be recorded",
                current=order.status,
                requested=RecordStatus.PAID.value,
            )

        log.info(
            "order %s: PENDING -> PAID via %s",
            order.id,
            confirmation.payment_ref.provider,
        )
        self._notify_paid(order)
        return TransitionResult(order, True)

    def confirm_legacy_payment(self, order_id: str, paypal_order_id: str) -> TransitionResult:
        if self.paypal is None:
            raise PaymentError("PayPal is not available")
        details = self.paypal.verify_order_completed(paypal_order_id)
        if details is None:
            raise PaymentError(f"PayPal order {paypal_order_id} is not completed")
        return self.mark_paid(order_id, PaymentConfirmation.from_legacy(details))

    def _check_correlation(self, order: MulchOrder, confirmation: PaymentConfirmation) -> None:
        problems: List[str] = []
        if confirmation.record_type != RECORD_TYPE_ORDER:
            problems.append(f"type={confirmation.record_type or '-'}")
        if confirmation.record_id != order.id:
            problems.append(f"record={confirmation.record_id or '-'}")
        if confirmation.amount_cents is not None and int(confirmation.amount_cents) != order.total_cents:
            problems.append(f"amount={confirmation.amount_cents} expected={order.total_cents}")
        if confirmation.currency and confirmation.currency.lower() != (order.currency or "").lower():
            problems.append(f"currency={confirmation.currency}")
        if problems:
            log.warning(
                "order %s: rejecting %s confirmation (%s)",
                order.id,
                confirmation.payment_ref.provider,
                ", ".join(problems),
            )
            raise CorrelationMismatch(
                f"Payment confirmation does not belong to order {order.id}",
                extra={"mismatch": problems},
            )

    def _notify_paid(self, order: MulchOrder) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.order_paid(order)
        except Exception:
            # The payment is already recorded; a mail failure must not undo it.
            log.exception("order %s: paid notification failed", order.id)

    # ------------------------------------------------------------------
    # Other transitions
    # ------------------------------------------------------------------
    def cancel(self, order_id: str) -> TransitionResult:
        order = self.store.get_order(order_id)
        if order.state == RecordStatus.CANCELLED:
            return TransitionResult(order, False)
        if order.state != RecordStatus.PENDING:
            raise InvalidTransition(
                f"Order {order.id} is {order.status} and can no longer be cancelled",
                current=order.status,
                requested=RecordStatus.CANCELLED.value,
            )
        return self._swap(order, RecordStatus.CANCELLED)

    def transition(self, order_id: str, new_status: RecordStatus | str) -> TransitionResult:
        try:
            if isinstance(new_status, RecordStatus):
                target = new_status
            else:
                target = RecordStatus(str(new_status).strip().upper())
        except ValueError:
            raise InvalidTransition(f"Unknown status {new_status!r}", requested=str(new_status))

        order = self.store.get_order(order_id)
        if order.state == target:
            return TransitionResult(order, False)
        if target not in ADMIN_EDGES[order.state]:
            raise InvalidTransition(
                f"Order {order.id} cannot move from {order.status} to {target.value}",
                current=order.status,
                requested=target.value,
            )
        result = self._swap(order, target)
        if result.changed and target == RecordStatus.PAID:
            self._notify_paid(result.order)
        return result

    def _swap(self, order: MulchOrder, target: RecordStatus) -> TransitionResult:
        before = order.status
        if not self.store.compare_and_set_status(order.id, [order.state], target):
            current = self.store.get_order(order.id)
            if current.state == target:
                return TransitionResult(current, False)
            raise InvalidTransition(
                f"Order {order.id} moved to {current.status} concurrently",
                current=current.status,
                requested=target.value,
            )
        log.info("order %s: %s -> %s", order.id, before, target.value)
        return TransitionResult(self.store.get_order(order.id), True)

    def expire_stale_orders(self, older_than_days: int, *, dry_run: bool = False) -> List[str]:
        """Cancel PENDING orders created more than ``older_than_days`` ago. Returns their ids."""
        cutoff = utcnow() - timedelta(days=int(older_than_days))
        expired: List[str] = []
        for order in self.store.list_stale_pending_orders(cutoff):
            if dry_run:
                expired.append(order.id)
                continue
            if self.store.compare_and_set_status(order.id, [RecordStatus.PENDING], RecordStatus.CANCELLED):
                expired.append(order.id)
        log.info(
            "stale orders: %s %d PENDING order(s) older than %d days",
            "found" if dry_run else "cancelled",
            len(expired),
            older_than_days,
        )
        return expired

    # ------------------------------------------------------------------
    # Donations
    # ------------------------------------------------------------------
    def record_donation(self, details: SessionDetails) -> Tuple[Donation, bool]:
        """Create the donation for a paid session, or return the one already recorded."""
        if details.record_type != RECORD_TYPE_DONATION:
            raise CorrelationMismatch(
                f"Checkout session {details.session_id} is not a donation",
                extra={"type": details.record_type},
            )
        if not details.amount_total_cents or details.amount_total_cents <= 0:
            raise PaymentError(f"Checkout session {details.session_id} carries no amount")

        given, surname = _split_name(details.customer_name)
        donor = DonorInfo(
            given_name=given or details.metadata.get("donorGivenName") or None,
            surname=surname or details.metadata.get("donorSurname") or None,
            email=details.customer_email or details.metadata.get("donorEmail") or None,
        )
        return self.store.create_donation(
            amount_cents=details.amount_total_cents,
            payment_ref=details.payment_ref(),
            donor=donor,
            currency=details.currency or self.gateway.currency,
        )

    def record_legacy_donation(self, paypal_order_id: str, donor: Optional[DonorInfo] = None) -> Tuple[Donation, bool]:
        if self.paypal is None:
            raise PaymentError("PayPal is not available")
        existing = self.store.get_donation_by_paypal_order_id(paypal_order_id)
        if existing is not None:
            return existing, False
        details = self.paypal.verify_order_completed(paypal_order_id)
        if details is None:
            raise PaymentError(f"PayPal order {paypal_order_id} is not completed")
        if not details.amount_cents or details.amount_cents <= 0:
            raise PaymentError(f"PayPal order {paypal_order_id} carries no amount")
        return self.store.create_donation(
            amount_cents=details.amount_cents,
            payment_ref=details.payment_ref(),
            donor=donor,
            currency=details.currency or self.gateway.currency,
        )


__all__ = [
    "ADMIN_EDGES",
    "OrderLifecycle",
    "PaymentConfirmation",
    "TransitionResult",
    "order_description",
]
