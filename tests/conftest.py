# tests/conftest.py
import pytest
import stripe

from fundraiser import create_app
from fundraiser.config import TestingConfig
from fundraiser.extensions import db
from fundraiser.services.lifecycle import OrderLifecycle
from fundraiser.services.order_store import OrderStore
from fundraiser.services.payments import CheckoutSession, LegacyOrderDetails, SessionDetails, StripeGateway

from tests.utils import WEBHOOK_SECRET, RecordingNotifier, customer_identity, order_details


class FakeStripeGateway(StripeGateway):
    """Checkout sessions kept in memory; webhook verification stays real."""

    def __init__(self):
        super().__init__(secret_key="sk_test_dummy", webhook_secret=WEBHOOK_SECRET, currency="usd")
        self.sessions = {}
        self.created = []
        self.retrieve_calls = []

    def create_checkout_session(self, line_item, *, success_url, cancel_url, metadata, customer_email=None):
        sid = f"cs_test_{len(self.created) + 1:04d}"
        self.created.append(
            {
                "session_id": sid,
                "line_item": line_item,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "metadata": dict(metadata),
                "customer_email": customer_email,
            }
        )
        self.sessions[sid] = {
            "id": sid,
            "payment_status": "unpaid",
            "metadata": {k: str(v) for k, v in metadata.items()},
            "amount_total": line_item.total_cents,
            "currency": self.currency,
            "payment_intent": None,
            "customer": None,
            "customer_email": customer_email,
            "customer_details": None,
        }
        return CheckoutSession(session_id=sid, redirect_url=f"https://checkout.stripe.test/pay/{sid}")

    def pay(self, session_id, *, payment_intent=None, customer=None, name="Jane Doe"):
        s = self.sessions[session_id]
        s["payment_status"] = "paid"
        s["payment_intent"] = payment_intent or session_id.replace("cs_", "pi_")
        s["customer"] = customer or session_id.replace("cs_", "cus_")
        s["customer_details"] = {"name": name, "email": s.get("customer_email")}
        return s

    def retrieve_session(self, session_id):
        self.retrieve_calls.append(session_id)
        if session_id not in self.sessions:
            raise stripe.InvalidRequestError(f"No such checkout.session: '{session_id}'", "id")
        return SessionDetails.from_stripe(self.sessions[session_id])


class FakePayPalGateway:
    configured = True
    client_id = "paypal-client"

    def __init__(self):
        self.orders = {}

    def complete(self, paypal_order_id, *, reference_id, amount_cents, payer_id="PAYER1", source="paypal"):
        self.orders[paypal_order_id] = LegacyOrderDetails(
            order_id=paypal_order_id,
            status="COMPLETED",
            reference_id=reference_id,
            amount_cents=amount_cents,
            currency="usd",
            payer_id=payer_id,
            payment_source=source,
        )

    def verify_order_completed(self, paypal_order_id):
        return self.orders.get(paypal_order_id)


@pytest.fixture()
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def gateway(app):
    fake = FakeStripeGateway()
    app.extensions["stripe_gateway"] = fake
    return fake


@pytest.fixture()
def paypal(app):
    fake = FakePayPalGateway()
    app.extensions["paypal_gateway"] = fake
    return fake


@pytest.fixture()
def notifier(app):
    rec = RecordingNotifier()
    app.extensions["order_notifier"] = rec
    return rec


@pytest.fixture()
def store(app):
    return OrderStore()


@pytest.fixture()
def lifecycle(store, gateway, paypal, notifier):
    return OrderLifecycle(store, gateway, paypal=paypal, notifier=notifier, min_donation_cents=100)


@pytest.fixture()
def make_order(store):
    def _make(quantity=10, **kw):
        identity = kw.pop("customer", None) or customer_identity()
        return store.create_order(order_details(quantity, **kw), identity)

    return _make
