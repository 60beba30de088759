from datetime import datetime, timedelta

import pytest
from sqlalchemy import func, select

from fundraiser.extensions import db
from fundraiser.models import Customer, Donation, MulchOrder, RecordStatus
from fundraiser.models.payment_ref import LegacyPaymentRef, StripePaymentRef
from fundraiser.services.errors import InvalidTransition, NotFound, PaymentRefConflict
from fundraiser.services.order_store import DonorInfo

from tests.utils import customer_identity, order_details


def _stripe_ref(n=1):
    return StripePaymentRef(session_id=f"cs_{n}", payment_intent_id=f"pi_{n}", customer_id=f"cus_{n}")


def test_create_order_starts_pending_with_fixed_total(store):
    order = store.create_order(order_details(10), customer_identity())

    assert order.status == RecordStatus.PENDING.value
    assert order.total_cents == 7000
    assert order.payment_ref is None
    assert order.customer.email == "jane@example.com"


def test_customer_reused_only_on_exact_identity_match(store):
    a = store.create_order(order_details(1), customer_identity())
    b = store.create_order(order_details(2), customer_identity())
    c = store.create_order(order_details(3), customer_identity(phone="555-999-0000"))

    assert a.customer_id == b.customer_id
    assert c.customer_id != a.customer_id
    assert db.session.scalar(select(func.count(Customer.id))) == 2


def test_duplicate_submissions_create_distinct_orders(store):
    a = store.create_order(order_details(5), customer_identity())
    b = store.create_order(order_details(5), customer_identity())
    assert a.id != b.id
    assert db.session.scalar(select(func.count(MulchOrder.id))) == 2


def test_get_order_unknown_id_raises_not_found(store):
    with pytest.raises(NotFound):
        store.get_order("does-not-exist")


def test_update_order_payment_merges_status_and_ref_only(store):
    order = store.create_order(order_details(10), customer_identity())

    updated = store.update_order_payment(order.id, status=RecordStatus.PAID, payment_ref=_stripe_ref())

    assert updated.status == "PAID"
    assert updated.paid_at is not None
    assert updated.stripe_session_id == "cs_1"
    assert updated.quantity == 10
    assert updated.total_cents == 7000
    assert updated.customer_id == order.customer_id


def test_reference_is_written_once(store):
    order = store.create_order(order_details(10), customer_identity())
    store.update_order_payment(order.id, status=RecordStatus.PAID, payment_ref=_stripe_ref(1))

    with pytest.raises(PaymentRefConflict):
        store.update_order_payment(order.id, payment_ref=_stripe_ref(2))
    with pytest.raises(PaymentRefConflict):
        store.update_order_payment(
            order.id, payment_ref=LegacyPaymentRef(order_id="PP-1", payer_id=None, payment_source="paypal")
        )

    assert store.get_order(order.id).stripe_session_id == "cs_1"
    assert store.get_order(order.id).paypal_order_id is None


def test_pending_never_written_over_later_state(store):
    order = store.create_order(order_details(1), customer_identity())
    store.update_order_payment(order.id, status=RecordStatus.PAID)

    with pytest.raises(InvalidTransition):
        store.update_order_payment(order.id, status=RecordStatus.PENDING)
    assert store.get_order(order.id).status == "PAID"


def test_paid_never_written_over_cancelled(store):
    order = store.create_order(order_details(2), customer_identity())
    store.update_order_payment(order.id, status=RecordStatus.CANCELLED)

    with pytest.raises(InvalidTransition) as exc:
        store.update_order_payment(order.id, status=RecordStatus.PAID, payment_ref=_stripe_ref())

    assert exc.value.current == "CANCELLED"
    current = store.get_order(order.id)
    assert current.status == "CANCELLED"
    assert current.payment_ref is None


def test_paid_never_written_over_refunded_by_session_id(store):
    order = store.create_order(order_details(2), customer_identity())
    store.update_order_payment(order.id, status=RecordStatus.PAID, payment_ref=_stripe_ref())
    store.update_order_payment(order.id, status=RecordStatus.REFUNDED)

    with pytest.raises(InvalidTransition):
        store.update_order_payment_by_session_id("cs_1", status=RecordStatus.PAID, payment_intent_id="pi_x")

    assert store.get_order(order.id).status == "REFUNDED"


def test_status_writes_follow_lifecycle_edges(store):
    order = store.create_order(order_details(2), customer_identity())

    with pytest.raises(InvalidTransition):
        store.update_order_payment(order.id, status=RecordStatus.FULFILLED)

    store.update_order_payment(order.id, status=RecordStatus.PAID)
    paid_at = store.get_order(order.id).paid_at
    assert store.update_order_payment(order.id, status=RecordStatus.PAID).paid_at == paid_at
    assert store.update_order_payment(order.id, status="FULFILLED").status == "FULFILLED"
    with pytest.raises(InvalidTransition):
        store.update_order_payment(order.id, status=RecordStatus.CANCELLED)


def test_update_unknown_order_raises_not_found(store):
    with pytest.raises(NotFound):
        store.update_order_payment("missing", status=RecordStatus.PAID)


def test_update_by_session_id_fills_missing_fields_only(store):
    order = store.create_order(order_details(4), customer_identity())
    store.update_order_payment(
        order.id,
        status=RecordStatus.PAID,
        payment_ref=StripePaymentRef(session_id="cs_async", payment_intent_id=None, customer_id="cus_first"),
    )

    updated = store.update_order_payment_by_session_id(
        "cs_async", payment_intent_id="pi_late", customer_id="cus_second"
    )

    assert updated.id == order.id
    assert updated.stripe_payment_intent_id == "pi_late"
    assert updated.stripe_customer_id == "cus_first"
    assert updated.status == "PAID"


def test_update_by_unknown_session_id_raises_not_found(store):
    with pytest.raises(NotFound):
        store.update_order_payment_by_session_id("cs_nope", status=RecordStatus.PAID)


def test_compare_and_set_only_first_caller_wins(store):
    order = store.create_order(order_details(2), customer_identity())

    first = store.compare_and_set_status(order.id, [RecordStatus.PENDING], RecordStatus.PAID, payment_ref=_stripe_ref(1))
    second = store.compare_and_set_status(order.id, [RecordStatus.PENDING], RecordStatus.PAID, payment_ref=_stripe_ref(2))

    assert first is True
    assert second is False
    assert store.get_order(order.id).stripe_session_id == "cs_1"


def test_compare_and_set_refuses_unexpected_status(store):
    order = store.create_order(order_details(2), customer_identity())
    assert store.compare_and_set_status(order.id, [RecordStatus.PENDING], RecordStatus.CANCELLED)
    assert not store.compare_and_set_status(order.id, [RecordStatus.PENDING], RecordStatus.PAID)
    assert store.get_order(order.id).status == "CANCELLED"


def test_list_orders_for_period_is_half_open(store):
    inside = store.create_order(order_details(1), customer_identity())
    outside = store.create_order(order_details(1), customer_identity())
    outside.created_at = datetime(2020, 6, 1)
    db.session.commit()

    now = datetime.utcnow()
    found = store.list_orders_for_period(now - timedelta(days=1), now + timedelta(days=1))
    assert [o.id for o in found] == [inside.id]


def test_create_donation_is_idempotent_per_session(store):
    ref = _stripe_ref(7)
    d1, created1 = store.create_donation(amount_cents=5000, payment_ref=ref, donor=DonorInfo(given_name="Ann"))
    d2, created2 = store.create_donation(amount_cents=5000, payment_ref=ref)

    assert created1 is True
    assert created2 is False
    assert d1.id == d2.id
    assert db.session.scalar(select(func.count(Donation.id))) == 1
    assert store.get_donation_by_session_id("cs_7").donor_given_name == "Ann"


def test_create_legacy_donation_keyed_by_paypal_order(store):
    ref = LegacyPaymentRef(order_id="PP-42", payer_id="PAYER", payment_source="paypal")
    d1, _ = store.create_donation(amount_cents=2500, payment_ref=ref)
    d2, created = store.create_donation(amount_cents=2500, payment_ref=ref)

    assert created is False
    assert d1.id == d2.id
    assert d1.payment_provider == "paypal"
