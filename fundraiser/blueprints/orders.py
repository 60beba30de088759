# fundraiser/blueprints/orders.py
# Buyer-facing mulch order endpoints: submit, checkout, return, cancel.
from __future__ import annotations

from flask import Blueprint, current_app, request

from fundraiser.blueprints import base_url_from_request, json_error, json_ok, json_response, request_payload
from fundraiser.services import checkout_return_handler, order_lifecycle, order_store
from fundraiser.services.checkout_return import STATE_PENDING
from fundraiser.services.intake import OrderSubmission

bp = Blueprint("orders", __name__, url_prefix="/fundraisers/mulch")


@bp.get("/config")
def fundraiser_config():
    cfg = current_app.config
    return json_ok(
        {
            "wardName": cfg.get("WARD_NAME"),
            "contactEmail": cfg.get("WARD_CONTACT_EMAIL"),
            "neighborhoods": list(cfg.get("WARD_NEIGHBORHOODS") or []),
            "mulchPriceDeliveryCents": int(cfg.get("MULCH_PRICE_DELIVERY_CENTS") or 0),
            "mulchPriceSpreadCents": int(cfg.get("MULCH_PRICE_SPREAD_CENTS") or 0),
            "deliveryDates": [d for d in (cfg.get("MULCH_DELIVERY_DATE_1"), cfg.get("MULCH_DELIVERY_DATE_2")) if d],
            "acceptingMulchOrders": bool(cfg.get("ACCEPTING_MULCH_ORDERS")),
        }
    )


@bp.post("/orders")
def create_order():
    cfg = current_app.config
    if not cfg.get("ACCEPTING_MULCH_ORDERS"):
        return json_error("Mulch orders are closed for this season", 403)

    sub = OrderSubmission.from_payload(
        request_payload(),
        neighborhoods=list(cfg.get("WARD_NEIGHBORHOODS") or []),
        price_delivery_cents=int(cfg["MULCH_PRICE_DELIVERY_CENTS"]),
        price_spread_cents=int(cfg["MULCH_PRICE_SPREAD_CENTS"]),
        currency=cfg.get("DEFAULT_CURRENCY") or "usd",
    )
    order = order_store().create_order(sub.details, sub.customer)
    return json_ok({"order": order.as_dict()}, 201)


@bp.get("/orders/<order_id>")
def get_order(order_id: str):
    order = order_store().get_order(order_id)
    return json_ok({"order": order.as_dict()})


@bp.post("/orders/<order_id>/checkout")
def start_checkout(order_id: str):
    session = order_lifecycle().start_checkout(order_id, base_url_from_request())
    return json_ok({"checkoutUrl": session.redirect_url, "sessionId": session.session_id})


@bp.get("/orders/<order_id>/return")
def checkout_return(order_id: str):
    session_id = (request.args.get("session_id") or "").strip() or None
    outcome = checkout_return_handler().confirm_order_return(order_id, session_id)
    body = {"ok": True, "state": outcome.state, "order": outcome.record.as_dict()}
    if outcome.state == STATE_PENDING:
        body["message"] = "Payment could not be confirmed yet. This page will update once it is."
        return json_response(body, 202)
    return json_response(body, 200)


@bp.post("/orders/<order_id>/cancel")
def cancel_order(order_id: str):
    result = order_lifecycle().cancel(order_id)
    return json_ok({"order": result.order.as_dict(), "changed": result.changed})


@bp.post("/orders/<order_id>/paypal")
def confirm_paypal(order_id: str):
    data = request_payload()
    paypal_order_id = str(data.get("paypalOrderId") or data.get("orderID") or "").strip()
    if not paypal_order_id:
        return json_error("paypalOrderId is required", 400)
    result = order_lifecycle().confirm_legacy_payment(order_id, paypal_order_id)
    return json_ok({"order": result.order.as_dict(), "changed": result.changed})
