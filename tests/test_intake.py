import pytest

from fundraiser.services.intake import DonationSubmission, IntakeError, OrderSubmission

NEIGHBORHOODS = ["Maple Hills", "Cedar Park"]


def _parse(**overrides):
    data = {
        "quantity": "6",
        "color": "black",
        "shouldSpread": "true",
        "neighborhood": "Cedar Park",
        "streetAddress": " 4 Oak Ct ",
        "name": "Sam Poe",
        "email": "SAM@example.com",
        "phone": "555.222.3333",
    }
    data.update(overrides)
    return OrderSubmission.from_payload(
        data, neighborhoods=NEIGHBORHOODS, price_delivery_cents=700, price_spread_cents=900
    )


def test_valid_order_submission():
    sub = _parse()
    assert sub.details.quantity == 6
    assert sub.details.order_type == "SPREAD"
    assert sub.details.price_per_unit_cents == 900
    assert sub.details.color == "BLACK"
    assert sub.details.street_address == "4 Oak Ct"
    assert sub.details.referral_source is None
    assert sub.customer.email == "sam@example.com"


@pytest.mark.parametrize(
    "overrides,field",
    [
        ({"quantity": "0"}, "quantity"),
        ({"quantity": "2.5"}, "quantity"),
        ({"quantity": "-3"}, "quantity"),
        ({"color": "red"}, "color"),
        ({"neighborhood": "Elsewhere"}, "neighborhood"),
        ({"streetAddress": ""}, "street"),
        ({"name": "  "}, "name"),
        ({"email": "sam@"}, "email"),
        ({"phone": "555-1234"}, "phone"),
        ({"referralSource": "BILLBOARD"}, "referralSource"),
        ({"referralSource": "OTHER"}, "referralSourceDetails"),
    ],
)
def test_invalid_order_fields(overrides, field):
    with pytest.raises(IntakeError) as exc:
        _parse(**overrides)
    assert field in exc.value.field_errors


def test_referral_details_kept_only_for_other():
    assert _parse(referralSource="OTHER", referralSourceDetails="Neighbor").details.referral_source_details == "Neighbor"
    assert _parse(referralSource="FLYER", referralSourceDetails="ignored").details.referral_source_details is None


@pytest.mark.parametrize(
    "data,cents",
    [
        ({"amount": "50"}, 5000),
        ({"amount": "$1,250.50"}, 125050),
        ({"amount": "12.345"}, 1235),
        ({"amountCents": 2500}, 2500),
    ],
)
def test_donation_amounts(data, cents):
    assert DonationSubmission.from_payload(data).amount_cents == cents


@pytest.mark.parametrize("data", [{}, {"amount": "abc"}, {"amount": "0.99"}, {"amountCents": "-5"}, {"amount": "NaN"}])
def test_invalid_donation_amounts(data):
    with pytest.raises(IntakeError) as exc:
        DonationSubmission.from_payload(data, min_cents=100)
    assert "amount" in exc.value.field_errors


def test_donation_email_validated_when_present():
    with pytest.raises(IntakeError):
        DonationSubmission.from_payload({"amount": "5", "donorEmail": "not-an-email"})
    sub = DonationSubmission.from_payload({"amount": "5", "donorGivenName": "Lee"})
    assert sub.donor.email is None
    assert sub.donor.given_name == "Lee"
