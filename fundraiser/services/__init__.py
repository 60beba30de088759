"""
Service wiring for request code.

Gateways and the notifier are built once per app (see extensions.init_gateways
and create_app) and live on ``app.extensions``; the stateless services around
them are assembled per call.
"""

from __future__ import annotations

from flask import current_app

from fundraiser.services.checkout_return import CheckoutReturnHandler
from fundraiser.services.lifecycle import OrderLifecycle
from fundraiser.services.order_store import OrderStore
from fundraiser.services.payments import PayPalGateway, StripeGateway
from fundraiser.services.webhooks import WebhookIngestor


def order_store() -> OrderStore:
    return OrderStore()


def stripe_gateway() -> StripeGateway:
    return current_app.extensions["stripe_gateway"]


def paypal_gateway() -> PayPalGateway:
    return current_app.extensions["paypal_gateway"]


def order_lifecycle() -> OrderLifecycle:
    return OrderLifecycle(
        order_store(),
        stripe_gateway(),
        paypal=paypal_gateway(),
        notifier=current_app.extensions.get("order_notifier"),
        min_donation_cents=int(current_app.config.get("MIN_DONATION_CENTS") or 100),
    )


def webhook_ingestor() -> WebhookIngestor:
    return WebhookIngestor(stripe_gateway(), order_lifecycle())


def checkout_return_handler() -> CheckoutReturnHandler:
    return CheckoutReturnHandler(order_store(), stripe_gateway(), order_lifecycle())


__all__ = [
    "checkout_return_handler",
    "order_lifecycle",
    "order_store",
    "paypal_gateway",
    "stripe_gateway",
    "webhook_ingestor",
]
