"""
Order Store: durable CRUD over mulch orders, donations and customers.

Every write that changes status or payment references is a single conditional
UPDATE, so concurrent confirmations for the same order cannot both land.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import IntegrityError

from fundraiser.extensions import db
from fundraiser.models import Customer, Donation, MulchOrder, RecordStatus
from fundraiser.models.mixins import utcnow
from fundraiser.models.payment_ref import ALL_REF_COLUMNS, LegacyPaymentRef, PaymentRef, StripePaymentRef
from fundraiser.models.status import allowed_predecessors
from fundraiser.services.errors import InvalidTransition, NotFound, PaymentRefConflict

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerIdentity:
    name: str
    email: str
    phone: str


@dataclass(frozen=True)
class OrderDetails:
    quantity: int
    price_per_unit_cents: int
    order_type: str
    color: str
    street_address: str
    neighborhood: str
    note: Optional[str] = None
    referral_source: Optional[str] = None
    referral_source_details: Optional[str] = None
    currency: str = "usd"


@dataclass(frozen=True)
class DonorInfo:
    given_name: Optional[str] = None
    surname: Optional[str] = None
    email: Optional[str] = None


def _tx_commit() -> None:
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _status_value(status: RecordStatus | str) -> str:
    return RecordStatus(status).value


def _predecessor_values(status: RecordStatus | str) -> list:
    return sorted(s.value for s in allowed_predecessors(RecordStatus(status)))


def _invalid_status_write(order: MulchOrder, status) -> InvalidTransition:
    requested = _status_value(status) if status is not None else None
    return InvalidTransition(
        f"Order {order.id} cannot move from {order.status} to {requested}",
        current=order.status,
        requested=requested,
    )


class OrderStore:
    """Repository over the relational store. Stateless; safe to share across requests."""

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------
    def create_order(self, details: OrderDetails, customer: CustomerIdentity) -> MulchOrder:
        existing = db.session.execute(
            select(Customer)
            .where(
                Customer.name == customer.name,
                Customer.email == customer.email,
                Customer.phone == customer.phone,
            )
            .order_by(Customer.id)
            .limit(1)
        ).scalar_one_or_none()

        if existing is None:
            existing = Customer(name=customer.name, email=customer.email, phone=customer.phone)
            db.session.add(existing)

        order = MulchOrder(
            quantity=int(details.quantity),
            price_per_unit_cents=int(details.price_per_unit_cents),
            currency=details.currency,
            order_type=details.order_type,
            color=details.color,
            street_address=details.street_address,
            neighborhood=details.neighborhood,
            note=details.note,
            referral_source=details.referral_source,
            referral_source_details=details.referral_source_details,
            status=RecordStatus.PENDING.value,
            customer=existing,
        )
        db.session.add(order)
        _tx_commit()
        log.info("order %s created (qty=%s, total_cents=%s)", order.id, order.quantity, order.total_cents)
        return order

    def find_order(self, order_id: str) -> Optional[MulchOrder]:
        if not order_id:
            return None
        return db.session.get(MulchOrder, str(order_id), populate_existing=True)

    def get_order(self, order_id: str) -> MulchOrder:
        order = self.find_order(order_id)
        if order is None:
            raise NotFound(f"Order {order_id} not found")
        return order

    def get_order_by_session_id(self, session_id: str) -> MulchOrder:
        order = None
        if session_id:
            order = db.session.execute(
                select(MulchOrder)
                .where(MulchOrder.stripe_session_id == session_id)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        if order is None:
            raise NotFound(f"No order for checkout session {session_id}")
        return order

    def update_order_payment(
        self,
        order_id: str,
        *,
        status: Optional[RecordStatus | str] = None,
        payment_ref: PaymentRef = None,
    ) -> MulchOrder:
        """
        Merge status and/or a payment reference onto an order.

        Never touches quantity, price or the customer link. A reference is only
        written while no reference is present, and a status is only written over
        one it may follow.
        """
        stmt = sa_update(MulchOrder).where(MulchOrder.id == str(order_id))
        vals = self._payment_values(status=status, payment_ref=payment_ref)
        if payment_ref is not None:
            stmt = stmt.where(*[getattr(MulchOrder, c).is_(None) for c in ALL_REF_COLUMNS])
        if status is not None:
            stmt = stmt.where(MulchOrder.status.in_(_predecessor_values(status)))

        res = db.session.execute(stmt.values(**vals).execution_options(synchronize_session=False))
        if not getattr(res, "rowcount", 0):
            db.session.rollback()
            current = self.get_order(order_id)
            if payment_ref is not None and current.payment_ref is not None:
                raise PaymentRefConflict(
                    f"Order {order_id} already carries a {current.payment_provider} reference",
                    current=current.status,
                    requested=_status_value(status) if status else None,
                )
            raise _invalid_status_write(current, status)
        _tx_commit()
        return self.get_order(order_id)

    def update_order_payment_by_session_id(
        self,
        session_id: str,
        *,
        status: Optional[RecordStatus | str] = None,
        payment_intent_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> MulchOrder:
        """Same as update_order_payment, keyed by the Stripe checkout session id.

        The session id is itself part of the reference, so only the reference's
        still-empty columns can be filled here.
        """
        order = self.get_order_by_session_id(session_id)
        vals = self._payment_values(status=status, payment_ref=None)
        if payment_intent_id:
            vals["stripe_payment_intent_id"] = func.coalesce(MulchOrder.stripe_payment_intent_id, payment_intent_id)
        if customer_id:
            vals["stripe_customer_id"] = func.coalesce(MulchOrder.stripe_customer_id, customer_id)

        stmt = sa_update(MulchOrder).where(MulchOrder.stripe_session_id == session_id)
        if status is not None:
            stmt = stmt.where(MulchOrder.status.in_(_predecessor_values(status)))
        res = db.session.execute(stmt.values(**vals).execution_options(synchronize_session=False))
        if not getattr(res, "rowcount", 0):
            db.session.rollback()
            raise _invalid_status_write(self.get_order(order.id), status)
        _tx_commit()
        return self.get_order(order.id)

    def compare_and_set_status(
        self,
        order_id: str,
        expected: Iterable[RecordStatus | str],
        new: RecordStatus | str,
        *,
        payment_ref: PaymentRef = None,
    ) -> bool:
        """Atomically move ``order_id`` to ``new`` if its status is one of ``expected``.

        Returns True only for the caller whose UPDATE matched the row.
        """
        expected_values = [_status_value(s) for s in expected]
        stmt = (
            sa_update(MulchOrder)
            .where(MulchOrder.id == str(order_id), MulchOrder.status.in_(expected_values))
        )
        if payment_ref is not None:
            stmt = stmt.where(*[getattr(MulchOrder, c).is_(None) for c in ALL_REF_COLUMNS])

        vals = self._payment_values(status=new, payment_ref=payment_ref)
        res = db.session.execute(stmt.values(**vals).execution_options(synchronize_session=False))
        swapped = bool(getattr(res, "rowcount", 0))
        if swapped:
            _tx_commit()
        else:
            db.session.rollback()
        return swapped

    def list_orders_for_period(self, start: datetime, end: datetime) -> List[MulchOrder]:
        return list(
            db.session.execute(
                select(MulchOrder)
                .where(MulchOrder.created_at >= start, MulchOrder.created_at < end)
                .order_by(MulchOrder.created_at.asc())
            ).scalars()
        )

    def list_stale_pending_orders(self, older_than: datetime) -> List[MulchOrder]:
        return list(
            db.session.execute(
                select(MulchOrder)
                .where(
                    MulchOrder.status == RecordStatus.PENDING.value,
                    MulchOrder.created_at < older_than,
                )
                .order_by(MulchOrder.created_at.asc())
            ).scalars()
        )

    @staticmethod
    def _payment_values(*, status, payment_ref: PaymentRef) -> dict:
        now = utcnow()
        vals: dict = {"updated_at": now}
        if status is not None:
            vals["status"] = _status_value(status)
            if vals["status"] == RecordStatus.PAID.value:
                vals["paid_at"] = func.coalesce(MulchOrder.paid_at, now)
        if payment_ref is not None:
            vals.update(payment_ref.as_columns())
        return vals

    # ------------------------------------------------------------------
    # Donations
    # ------------------------------------------------------------------
    def create_donation(
        self,
        *,
        amount_cents: int,
        payment_ref: LegacyPaymentRef | StripePaymentRef,
        donor: Optional[DonorInfo] = None,
        currency: str = "usd",
    ) -> Tuple[Donation, bool]:
        """Insert a paid donation, or return the one already keyed by this provider id."""
        existing = self._find_donation_by_ref(payment_ref)
        if existing is not None:
            return existing, False

        donor = donor or DonorInfo()
        donation = Donation(
            amount_cents=int(amount_cents),
            currency=currency,
            status=RecordStatus.PAID.value,
            donor_given_name=(donor.given_name or None),
            donor_surname=(donor.surname or None),
            donor_email=(donor.email or None),
            **payment_ref.as_columns(),
        )
        db.session.add(donation)
        try:
            _tx_commit()
        except IntegrityError:
            # Lost the insert race to a concurrent delivery of the same payment.
            existing = self._find_donation_by_ref(payment_ref)
            if existing is None:
                raise
            return existing, False
        log.info("donation %s recorded (%s cents via %s)", donation.id, donation.amount_cents, payment_ref.provider)
        return donation, True

    def get_donation_by_session_id(self, session_id: str) -> Optional[Donation]:
        if not session_id:
            return None
        return db.session.execute(
            select(Donation).where(Donation.stripe_session_id == session_id)
        ).scalar_one_or_none()

    def get_donation_by_paypal_order_id(self, paypal_order_id: str) -> Optional[Donation]:
        if not paypal_order_id:
            return None
        return db.session.execute(
            select(Donation).where(Donation.paypal_order_id == paypal_order_id)
        ).scalar_one_or_none()

    def list_donations_for_period(self, start: datetime, end: datetime) -> List[Donation]:
        return list(
            db.session.execute(
                select(Donation)
                .where(Donation.created_at >= start, Donation.created_at < end)
                .order_by(Donation.created_at.asc())
            ).scalars()
        )

    def _find_donation_by_ref(self, payment_ref: LegacyPaymentRef | StripePaymentRef) -> Optional[Donation]:
        if isinstance(payment_ref, StripePaymentRef):
            return self.get_donation_by_session_id(payment_ref.session_id)
        return self.get_donation_by_paypal_order_id(payment_ref.order_id)
