# tests/utils.py
import hashlib
import hmac
import json
import time
from itertools import count

from fundraiser.services.order_store import CustomerIdentity, OrderDetails

WEBHOOK_SECRET = "whsec_test_secret"

_evt_seq = count(1)


class RecordingNotifier:
    def __init__(self):
        self.paid = []

    def order_paid(self, order):
        self.paid.append(order.id)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Stripe-Signature header value for ``payload`` (t=<ts>,v1=<hmac-sha256>)."""
    ts = int(timestamp if timestamp is not None else time.time())
    signed = f"{ts}.".encode("utf-8") + payload
    sig = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={sig}"


def session_object(
    session_id="cs_test_0001",
    *,
    record_type="order",
    order_id=None,
    amount_total=7000,
    currency="usd",
    payment_status="paid",
    payment_intent="pi_test_0001",
    customer="cus_test_0001",
    customer_email="jane@example.com",
    customer_name="Jane Doe",
    extra_metadata=None,
):
    metadata = {"type": record_type}
    if order_id is not None:
        metadata["order_id"] = order_id
    metadata.update(extra_metadata or {})
    return {
        "id": session_id,
        "object": "checkout.session",
        "mode": "payment",
        "payment_status": payment_status,
        "metadata": metadata,
        "amount_total": amount_total,
        "currency": currency,
        "payment_intent": payment_intent,
        "customer": customer,
        "customer_email": customer_email,
        "customer_details": {"email": customer_email, "name": customer_name},
    }


def stripe_event(obj, *, event_type="checkout.session.completed", event_id=None):
    return {
        "id": event_id or f"evt_test_{next(_evt_seq):05d}",
        "object": "event",
        "api_version": "2024-06-20",
        "created": int(time.time()),
        "livemode": False,
        "type": event_type,
        "data": {"object": obj},
    }


def post_webhook(client, event, *, secret=WEBHOOK_SECRET, signature=None):
    payload = json.dumps(event).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    sig = signature if signature is not None else sign_payload(payload, secret)
    if sig:
        headers["Stripe-Signature"] = sig
    return client.post("/payments/stripe/webhook", data=payload, headers=headers)


def order_details(quantity=10, *, spread=False, color="BROWN", neighborhood="Maple Hills", price=None):
    return OrderDetails(
        quantity=quantity,
        price_per_unit_cents=price if price is not None else (900 if spread else 700),
        order_type="SPREAD" if spread else "DELIVERY",
        color=color,
        street_address="12 Elm St",
        neighborhood=neighborhood,
        note="Leave by the driveway",
        referral_source="FLYER",
    )


def customer_identity(name="Jane Doe", email="jane@example.com", phone="555-123-4567"):
    return CustomerIdentity(name=name, email=email, phone=phone)
