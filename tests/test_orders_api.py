import pytest


def _form(**overrides):
    data = {
        "quantity": "10",
        "color": "brown",
        "shouldSpread": False,
        "neighborhood": "Maple Hills",
        "street": "12 Elm St",
        "name": "Jane Doe",
        "email": "Jane@Example.com",
        "phone": "(555) 123-4567",
        "referralSource": "FLYER",
    }
    data.update(overrides)
    return data


def test_fundraiser_config(client):
    r = client.get("/fundraisers/mulch/config")
    body = r.get_json()
    assert body["neighborhoods"] == ["Maple Hills", "Cedar Park", "Willow Creek"]
    assert body["mulchPriceDeliveryCents"] == 700
    assert body["deliveryDates"] == ["April 12", "April 19"]
    assert body["acceptingMulchOrders"] is True


def test_create_order(client):
    r = client.post("/fundraisers/mulch/orders", json=_form())

    assert r.status_code == 201
    order = r.get_json()["order"]
    assert order["status"] == "PENDING"
    assert order["totalCents"] == 7000
    assert order["color"] == "BROWN"
    assert order["orderType"] == "DELIVERY"
    assert order["payment"] is None
    assert order["customer"]["email"] == "jane@example.com"


def test_spread_orders_use_spread_price(client):
    r = client.post("/fundraisers/mulch/orders", json=_form(shouldSpread=True, quantity="4"))
    order = r.get_json()["order"]
    assert order["pricePerUnitCents"] == 900
    assert order["totalCents"] == 3600


def test_form_encoded_submission(client):
    r = client.post("/fundraisers/mulch/orders", data=_form(shouldSpread="on"))
    assert r.status_code == 201
    assert r.get_json()["order"]["orderType"] == "SPREAD"


def test_invalid_submission_reports_field_errors(client):
    r = client.post(
        "/fundraisers/mulch/orders",
        json=_form(quantity="ten", email="nope", phone="555", neighborhood="Atlantis"),
    )

    assert r.status_code == 400
    errors = r.get_json()["fieldErrors"]
    assert set(errors) == {"quantity", "email", "phone", "neighborhood"}


def test_orders_closed(app, client):
    app.config["ACCEPTING_MULCH_ORDERS"] = False
    r = client.post("/fundraisers/mulch/orders", json=_form())
    assert r.status_code == 403


def test_get_order_and_404(client, make_order):
    order = make_order(2)
    assert client.get(f"/fundraisers/mulch/orders/{order.id}").get_json()["order"]["id"] == order.id

    r = client.get("/fundraisers/mulch/orders/missing")
    assert r.status_code == 404
    assert r.get_json() == {"ok": False, "error": "Order missing not found", "code": "not_found"}


def test_checkout_returns_redirect(client, gateway, make_order):
    order = make_order(10)

    r = client.post(f"/fundraisers/mulch/orders/{order.id}/checkout")

    assert r.status_code == 200
    body = r.get_json()
    assert body["sessionId"] == "cs_test_0001"
    assert body["checkoutUrl"] == "https://checkout.stripe.test/pay/cs_test_0001"
    assert gateway.created[0]["success_url"].startswith(
        f"https://fundraiser.test/fundraisers/mulch/orders/{order.id}/return?session_id="
    )


def test_checkout_on_cancelled_order_is_409(client, gateway, lifecycle, make_order):
    order = make_order(10)
    lifecycle.cancel(order.id)
    r = client.post(f"/fundraisers/mulch/orders/{order.id}/checkout")
    assert r.status_code == 409
    assert gateway.created == []


def test_checkout_when_stripe_unconfigured_is_503(app, client, make_order):
    from fundraiser.services.payments import StripeGateway

    app.extensions["stripe_gateway"] = StripeGateway(secret_key="", webhook_secret="")
    order = make_order(10)
    r = client.post(f"/fundraisers/mulch/orders/{order.id}/checkout")
    assert r.status_code == 503
    assert r.get_json()["code"] == "gateway_unavailable"


def test_cancel(client, lifecycle, make_order):
    order = make_order(2)
    url = f"/fundraisers/mulch/orders/{order.id}/cancel"

    assert client.post(url).get_json()["changed"] is True
    r = client.post(url)
    assert r.status_code == 200
    assert r.get_json()["changed"] is False

    paid = make_order(2)
    lifecycle.transition(paid.id, "PAID")
    assert client.post(f"/fundraisers/mulch/orders/{paid.id}/cancel").status_code == 409


def test_paypal_confirmation(client, paypal, notifier, make_order):
    order = make_order(10)
    paypal.complete("PP-9", reference_id=order.id, amount_cents=7000)

    r = client.post(f"/fundraisers/mulch/orders/{order.id}/paypal", json={"orderID": "PP-9"})

    assert r.status_code == 200
    body = r.get_json()
    assert body["order"]["status"] == "PAID"
    assert body["order"]["payment"]["provider"] == "paypal"
    assert notifier.paid == [order.id]


@pytest.mark.parametrize("payload,status", [({}, 400), ({"paypalOrderId": "PP-unpaid"}, 400)])
def test_paypal_confirmation_failures(client, paypal, make_order, payload, status):
    order = make_order(10)
    r = client.post(f"/fundraisers/mulch/orders/{order.id}/paypal", json=payload)
    assert r.status_code == status


# ---------------------------------------------------------------------------
# Donations
# ---------------------------------------------------------------------------
def test_donation_checkout_validation(client, gateway):
    r = client.post("/fundraisers/mulch/donate/checkout", json={"amount": "0.50"})
    assert r.status_code == 400
    assert "amount" in r.get_json()["fieldErrors"]
    assert gateway.created == []


def test_paypal_donation_created_then_replayed(client, paypal):
    paypal.complete("PP-D1", reference_id=None, amount_cents=2500)
    payload = {"paypalOrderId": "PP-D1", "donorGivenName": "Ann", "donorEmail": "ANN@example.com"}

    first = client.post("/fundraisers/mulch/donate/paypal", json=payload)
    second = client.post("/fundraisers/mulch/donate/paypal", json=payload)

    assert first.status_code == 201
    assert first.get_json()["donation"]["donorEmail"] == "ann@example.com"
    assert second.status_code == 200
    assert second.get_json()["created"] is False


# ---------------------------------------------------------------------------
# Payments surface / app
# ---------------------------------------------------------------------------
def test_payments_config(client):
    body = client.get("/payments/config").get_json()
    assert body["publishableKey"] == "pk_test_dummy"
    assert body["mode"] == "test"
    assert body["currency"] == "usd"
    assert body["paypalEnabled"] is True
    assert body["paypalClientId"] == "paypal-client"


def test_payments_health(client):
    r = client.get("/payments/health")
    assert r.status_code == 200
    body = r.get_json()
    assert body["status"] == "ok"
    assert body["components"]["db"]["ok"] is True
    assert body["components"]["stripe"]["webhookSecretPresent"] is True


def test_request_id_is_echoed(client):
    r = client.get("/healthz", headers={"X-Request-ID": "abc123"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "abc123"


def test_unknown_route_is_json_404(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert r.get_json()["ok"] is False
