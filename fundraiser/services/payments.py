# fundraiser/services/payments.py
"""
Payment gateway clients.

StripeGateway  -> hosted Checkout sessions + signed webhooks (current provider)
PayPalGateway  -> order verification over the REST API (legacy provider)

Both are plain objects built once by the app factory from config; nothing here
reads or writes module-level provider state.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

import requests
import stripe

from fundraiser.models.payment_ref import LegacyPaymentRef, StripePaymentRef
from fundraiser.services.errors import GatewayUnavailable, InvalidSignature

log = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
CHECKOUT_ASYNC_SUCCEEDED = "checkout.session.async_payment_succeeded"

RECORD_TYPE_ORDER = "order"
RECORD_TYPE_DONATION = "donation"

# Stripe replaces this placeholder in success_url with the real session id.
SESSION_ID_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


# ----------------------------
# Small utilities
# ----------------------------
def _plain(obj: Any) -> Dict[str, Any]:
    """Stripe objects -> plain dicts (plain dicts pass through)."""
    if obj is None:
        return {}
    for attr in ("to_dict_recursive", "to_dict"):
        fn = getattr(obj, attr, None)
        if callable(fn):
            return fn()
    return dict(obj)


def _id_of(value: Any) -> Optional[str]:
    """Expanded objects and bare ids both appear in Stripe payloads."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    return _plain(value).get("id") or None


def _dollars_to_cents(raw: Any) -> Optional[int]:
    try:
        dollars = Decimal(str(raw))
    except (InvalidOperation, TypeError):
        return None
    return int((dollars * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ----------------------------
# Value objects
# ----------------------------
@dataclass(frozen=True)
class LineItem:
    name: str
    description: str
    unit_amount_cents: int
    quantity: int = 1

    @property
    def total_cents(self) -> int:
        return int(self.unit_amount_cents) * int(self.quantity)


@dataclass(frozen=True)
class CheckoutSession:
    session_id: str
    redirect_url: Optional[str]


@dataclass(frozen=True)
class SessionDetails:
    session_id: str
    payment_status: str
    metadata: Dict[str, str] = field(default_factory=dict)
    payment_intent_id: Optional[str] = None
    customer_id: Optional[str] = None
    amount_total_cents: Optional[int] = None
    currency: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def record_type(self) -> str:
        return str(self.metadata.get("type") or "").strip().lower()

    @property
    def record_id(self) -> Optional[str]:
        # orderId is the key older sessions were created with.
        raw = self.metadata.get("order_id") or self.metadata.get("orderId")
        return str(raw).strip() if raw else None

    def correlation(self) -> Tuple[str, Optional[str]]:
        return self.record_type, self.record_id

    def payment_ref(self) -> StripePaymentRef:
        return StripePaymentRef(
            session_id=self.session_id,
            payment_intent_id=self.payment_intent_id,
            customer_id=self.customer_id,
        )

    @classmethod
    def from_stripe(cls, session: Any) -> "SessionDetails":
        data = _plain(session)
        details = data.get("customer_details") or {}
        if not isinstance(details, dict):
            details = _plain(details)
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            metadata = _plain(metadata)
        amount_total = data.get("amount_total")
        return cls(
            session_id=str(data.get("id") or ""),
            payment_status=str(data.get("payment_status") or ""),
            metadata={str(k): str(v) for k, v in metadata.items() if v is not None},
            payment_intent_id=_id_of(data.get("payment_intent")),
            customer_id=_id_of(data.get("customer")),
            amount_total_cents=int(amount_total) if amount_total is not None else None,
            currency=(str(data.get("currency")).lower() if data.get("currency") else None),
            customer_email=data.get("customer_email") or details.get("email") or None,
            customer_name=details.get("name") or None,
        )


@dataclass(frozen=True)
class WebhookEvent:
    event_id: str
    type: str
    livemode: bool
    data_object: Dict[str, Any]

    @property
    def object_id(self) -> Optional[str]:
        return _id_of(self.data_object.get("id"))


@dataclass(frozen=True)
class LegacyOrderDetails:
    order_id: str
    status: str
    reference_id: Optional[str]
    amount_cents: Optional[int]
    currency: Optional[str]
    payer_id: Optional[str]
    payment_source: str

    @property
    def is_completed(self) -> bool:
        return self.status == "COMPLETED"

    def payment_ref(self) -> LegacyPaymentRef:
        return LegacyPaymentRef(
            order_id=self.order_id,
            payer_id=self.payer_id,
            payment_source=self.payment_source,
        )

    @classmethod
    def from_paypal(cls, data: Dict[str, Any]) -> "LegacyOrderDetails":
        unit = (data.get("purchase_units") or [{}])[0] or {}
        amount = unit.get("amount") or {}
        source = data.get("payment_source") or {}
        source_name = next(iter(source.keys()), None) if isinstance(source, dict) else None
        return cls(
            order_id=str(data.get("id") or ""),
            status=str(data.get("status") or "").upper(),
            reference_id=(unit.get("reference_id") or unit.get("custom_id") or None),
            amount_cents=_dollars_to_cents(amount.get("value")) if amount.get("value") is not None else None,
            currency=(str(amount.get("currency_code")).lower() if amount.get("currency_code") else None),
            payer_id=((data.get("payer") or {}).get("payer_id") or None),
            payment_source=str(source_name or "paypal"),
        )


# ----------------------------
# Stripe (current provider)
# ----------------------------
class StripeGateway:
    """Hosted Checkout sessions and webhook verification against Stripe."""

    name = "stripe"

    def __init__(
        self,
        *,
        secret_key: str,
        webhook_secret: str,
        currency: str = "usd",
        max_network_retries: int = 2,
    ):
        self.secret_key = (secret_key or "").strip()
        self.webhook_secret = (webhook_secret or "").strip()
        self.currency = (currency or "usd").lower()
        self.max_network_retries = int(max_network_retries)

    @property
    def configured(self) -> bool:
        return self.secret_key.startswith(("sk_", "rk_"))

    @property
    def mode(self) -> str:
        if self.secret_key.startswith(("sk_live_", "rk_live_")):
            return "live"
        if self.secret_key.startswith(("sk_test_", "rk_test_")):
            return "test"
        return "unknown"

    def _request_options(self) -> Dict[str, Any]:
        if not self.configured:
            raise GatewayUnavailable("Stripe is not configured (missing STRIPE_SECRET_KEY)")
        return {"api_key": self.secret_key, "max_network_retries": self.max_network_retries}

    def create_checkout_session(
        self,
        line_item: LineItem,
        *,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, Any],
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        if "type" not in metadata:
            raise ValueError("checkout metadata must carry a type discriminator")

        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": self.currency,
                        "unit_amount": int(line_item.unit_amount_cents),
                        "product_data": {
                            "name": line_item.name,
                            "description": line_item.description,
                        },
                    },
                    "quantity": int(line_item.quantity),
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": {str(k): "" if v is None else str(v) for k, v in metadata.items()},
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(**self._request_options(), **params)
        except stripe.StripeError as e:
            msg = getattr(e, "user_message", None) or str(e)
            log.error("stripe: checkout session create failed: %s", msg)
            raise GatewayUnavailable(f"Could not start checkout: {msg}") from e

        data = _plain(session)
        log.info("stripe: checkout session %s created (%s)", data.get("id"), metadata.get("type"))
        return CheckoutSession(session_id=str(data.get("id") or ""), redirect_url=data.get("url"))

    def retrieve_session(self, session_id: str) -> SessionDetails:
        session = stripe.checkout.Session.retrieve(
            session_id,
            **self._request_options(),
            expand=["payment_intent", "customer"],
        )
        return SessionDetails.from_stripe(session)

    def verify_session_paid(self, session_id: str) -> Optional[SessionDetails]:
        """Details only when Stripe reports the session paid; None for anything else."""
        if not session_id:
            return None
        try:
            details = self.retrieve_session(session_id)
        except stripe.InvalidRequestError as e:
            log.warning("stripe: session %s not retrievable, treating as unpaid: %s", session_id, e)
            return None
        if not details.is_paid:
            log.info("stripe: session %s payment_status=%s", session_id, details.payment_status or "?")
            return None
        return details

    def parse_webhook_event(self, raw_body: bytes, signature: Optional[str]) -> WebhookEvent:
        """Verify the Stripe-Signature header, then (and only then) parse the body."""
        if not signature:
            raise InvalidSignature("Missing Stripe-Signature header")
        if not self.webhook_secret:
            log.error("stripe: webhook received but STRIPE_WEBHOOK_SECRET is not configured")
            raise InvalidSignature("Webhook secret not configured")

        try:
            stripe.WebhookSignature.verify_header(
                raw_body, signature, self.webhook_secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
            )
        except stripe.SignatureVerificationError as e:
            raise InvalidSignature("Webhook signature verification failed") from e

        body = raw_body.decode("utf-8") if isinstance(raw_body, (bytes, bytearray)) else raw_body
        ev = json.loads(body)
        if not isinstance(ev, dict):
            raise ValueError("Webhook payload is not a JSON object")
        data = ev.get("data")
        obj = data.get("object") if isinstance(data, dict) else None
        return WebhookEvent(
            event_id=str(ev.get("id") or ""),
            type=str(ev.get("type") or "").lower(),
            livemode=bool(ev.get("livemode") or False),
            data_object=obj if isinstance(obj, dict) else {},
        )


# ----------------------------
# PayPal (legacy provider)
# ----------------------------
class PayPalGateway:
    """Read-side PayPal client: confirms that a buyer-approved order was captured."""

    name = "paypal"

    def __init__(
        self,
        *,
        client_id: str,
        secret: str,
        env: str = "sandbox",
        timeout: int = 15,
        http: Optional[requests.Session] = None,
    ):
        self.client_id = (client_id or "").strip()
        self.secret = (secret or "").strip()
        self.env = (env or "sandbox").lower()
        self.timeout = int(timeout or 15)
        self.http = http or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.secret)

    @property
    def base_url(self) -> str:
        return "https://api-m.paypal.com" if self.env == "live" else "https://api-m.sandbox.paypal.com"

    def _access_token(self) -> str:
        if not self.configured:
            raise GatewayUnavailable("PayPal is not configured (missing PAYPAL_CLIENT_ID / PAYPAL_SECRET)")
        try:
            resp = self.http.post(
                f"{self.base_url}/v1/oauth2/token",
                auth=(self.client_id, self.secret),
                data={"grant_type": "client_credentials"},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            log.error("paypal: token request failed: %s", e)
            raise GatewayUnavailable("PayPal authentication failed") from e
        token = (resp.json() or {}).get("access_token")
        if not token:
            raise GatewayUnavailable("PayPal did not return an access token")
        return str(token)

    def get_order(self, paypal_order_id: str) -> Optional[Dict[str, Any]]:
        token = self._access_token()
        try:
            resp = self.http.get(
                f"{self.base_url}/v2/checkout/orders/{paypal_order_id}",
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            log.error("paypal: order lookup failed: %s", e)
            raise GatewayUnavailable("PayPal order lookup failed") from e
        if resp.status_code == 404:
            return None
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise GatewayUnavailable(f"PayPal order lookup failed ({resp.status_code})") from e
        return resp.json()

    def verify_order_completed(self, paypal_order_id: str) -> Optional[LegacyOrderDetails]:
        if not paypal_order_id:
            return None
        data = self.get_order(paypal_order_id)
        if not data:
            log.warning("paypal: order %s not found, treating as unpaid", paypal_order_id)
            return None
        details = LegacyOrderDetails.from_paypal(data)
        if not details.is_completed:
            log.info("paypal: order %s status=%s", paypal_order_id, details.status or "?")
            return None
        return details


__all__: List[str] = [
    "CHECKOUT_ASYNC_SUCCEEDED",
    "CHECKOUT_COMPLETED",
    "CheckoutSession",
    "LegacyOrderDetails",
    "LineItem",
    "PayPalGateway",
    "RECORD_TYPE_DONATION",
    "RECORD_TYPE_ORDER",
    "SESSION_ID_PLACEHOLDER",
    "SessionDetails",
    "StripeGateway",
    "WebhookEvent",
]
