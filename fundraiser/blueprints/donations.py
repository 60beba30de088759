# fundraiser/blueprints/donations.py
# Donation checkout, thank-you confirmation and legacy PayPal capture.
from __future__ import annotations

from flask import Blueprint, current_app, request

from fundraiser.blueprints import base_url_from_request, json_error, json_ok, json_response, request_payload
from fundraiser.services import checkout_return_handler, order_lifecycle
from fundraiser.services.checkout_return import STATE_PENDING
from fundraiser.services.intake import DonationSubmission
from fundraiser.services.order_store import DonorInfo

bp = Blueprint("donations", __name__, url_prefix="/fundraisers/mulch/donate")


@bp.post("/checkout")
def donation_checkout():
    sub = DonationSubmission.from_payload(
        request_payload(),
        min_cents=int(current_app.config.get("MIN_DONATION_CENTS") or 100),
    )
    session = order_lifecycle().start_donation_checkout(sub.amount_cents, sub.donor, base_url_from_request())
    return json_ok({"checkoutUrl": session.redirect_url, "sessionId": session.session_id})


@bp.get("/thank-you")
def thank_you():
    session_id = (request.args.get("session_id") or "").strip() or None
    outcome = checkout_return_handler().confirm_donation_return(session_id)
    body = {
        "ok": True,
        "state": outcome.state,
        "donation": outcome.record.as_dict() if outcome.record is not None else None,
    }
    if outcome.state == STATE_PENDING:
        body["message"] = "Payment could not be confirmed yet. Thank you for your patience."
        return json_response(body, 202)
    return json_response(body, 200)


@bp.post("/paypal")
def paypal_donation():
    data = request_payload()
    paypal_order_id = str(data.get("paypalOrderId") or data.get("orderID") or "").strip()
    if not paypal_order_id:
        return json_error("paypalOrderId is required", 400)
    donor = DonorInfo(
        given_name=(str(data.get("donorGivenName") or "").strip() or None),
        surname=(str(data.get("donorSurname") or "").strip() or None),
        email=(str(data.get("donorEmail") or "").strip().lower() or None),
    )
    donation, created = order_lifecycle().record_legacy_donation(paypal_order_id, donor)
    return json_ok({"donation": donation.as_dict(), "created": created}, 201 if created else 200)
