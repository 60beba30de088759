from datetime import datetime

import pytest

from fundraiser.extensions import db
from fundraiser.models.payment_ref import LegacyPaymentRef, StripePaymentRef
from fundraiser.services.reporting import (
    donation_summary,
    list_donations_for_year,
    list_orders_for_year,
    neighborhood_stats,
    order_row,
    referral_label,
    revenue_summary,
)

NEIGHBORHOODS = ["Maple Hills", "Cedar Park", "Willow Creek"]


@pytest.fixture()
def season(lifecycle, make_order):
    """Five orders across statuses and neighborhoods."""
    a = make_order(10, neighborhood="Maple Hills")
    lifecycle.transition(a.id, "PAID")
    b = make_order(5, spread=True, neighborhood="Cedar Park")
    lifecycle.transition(b.id, "PAID")
    lifecycle.transition(b.id, "FULFILLED")
    make_order(3, neighborhood="Maple Hills")
    d = make_order(2, spread=True, neighborhood="Maple Hills")
    lifecycle.cancel(d.id)
    e = make_order(4, neighborhood="Old Town")
    lifecycle.transition(e.id, "PAID")
    return list_orders_for_year(lifecycle.store, datetime.now().year)


def test_revenue_counts_paid_and_fulfilled_only(season):
    summary = revenue_summary(season)

    assert summary.paid_orders == 3
    assert summary.total_bags == 19
    assert summary.spread_bags == 5
    assert summary.gross_revenue_cents == 7000 + 4500 + 2800
    assert summary.unfiltered_gross_cents == 7000 + 4500 + 2100 + 1800 + 2800


def test_refunded_orders_leave_revenue(lifecycle, season):
    paid_id = next(o.id for o in season if o.status == "PAID" and o.neighborhood == "Maple Hills")
    lifecycle.transition(paid_id, "REFUNDED")

    summary = revenue_summary(list_orders_for_year(lifecycle.store, datetime.now().year))

    assert summary.paid_orders == 2
    assert summary.gross_revenue_cents == 4500 + 2800


def test_neighborhood_stats_follow_configured_order(season):
    rows = [s.as_dict() for s in neighborhood_stats(season, NEIGHBORHOODS)]

    assert [r["neighborhood"] for r in rows] == NEIGHBORHOODS
    assert rows[0] == {
        "neighborhood": "Maple Hills",
        "totalOrders": 1,
        "totalBags": 10,
        "totalRevenueCents": 7000,
        "spreadBags": 0,
    }
    assert rows[1]["spreadBags"] == 5
    assert rows[1]["totalRevenueCents"] == 4500
    assert rows[2] == {
        "neighborhood": "Willow Creek",
        "totalOrders": 0,
        "totalBags": 0,
        "totalRevenueCents": 0,
        "spreadBags": 0,
    }


def test_year_listing_excludes_other_years(store, make_order):
    make_order(1)
    assert list_orders_for_year(store, 2000) == []
    assert len(list_orders_for_year(store, datetime.now().year)) == 1


def test_donation_summary(store):
    kept, _ = store.create_donation(
        amount_cents=5000,
        payment_ref=StripePaymentRef(session_id="cs_d1", payment_intent_id="pi_d1", customer_id=None),
    )
    store.create_donation(
        amount_cents=2500,
        payment_ref=LegacyPaymentRef(order_id="PP-D1", payer_id=None, payment_source="paypal"),
    )
    refunded, _ = store.create_donation(
        amount_cents=1000,
        payment_ref=StripePaymentRef(session_id="cs_d2", payment_intent_id=None, customer_id=None),
    )
    refunded.status = "REFUNDED"
    db.session.commit()

    summary = donation_summary(list_donations_for_year(store, datetime.now().year))

    assert summary == {
        "count": 2,
        "totalCents": 7500,
        "refundedCount": 1,
        "byProviderCents": {"stripe": 5000, "paypal": 2500},
    }


@pytest.mark.parametrize(
    "source,details,label",
    [
        ("FLYER", None, "Flyer"),
        ("ONLINE", None, "Online/Social Media"),
        ("OTHER", "Church bulletin", "Church bulletin"),
        ("OTHER", None, "Other"),
        (None, None, ""),
    ],
)
def test_referral_label(source, details, label):
    assert referral_label(source, details) == label


def test_order_row_flattens_for_admin_table(make_order):
    row = order_row(make_order(2, spread=True))
    assert row["referral"] == "Flyer"
    assert row["spread"] is True
    assert row["totalCents"] == 1800
    assert row["customer"]["email"] == "jane@example.com"
