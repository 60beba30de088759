"""Buyer email for orders that have just been paid."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any, Optional

from fundraiser.extensions import send_email_async
from fundraiser.models import MulchOrder

log = logging.getLogger(__name__)


def _delivery_dates(config: Any) -> str:
    dates = [d for d in (config.get("MULCH_DELIVERY_DATE_1"), config.get("MULCH_DELIVERY_DATE_2")) if d]
    return " or ".join(dates) or "to be announced"


def confirmation_body(order: MulchOrder, config: Any) -> str:
    base = (config.get("PUBLIC_BASE_URL") or "").rstrip("/")
    spread = order.is_spread
    customer_name = order.customer.name if order.customer else "there"
    return (
        f"Hello {customer_name},\n\n"
        "Thank you for your order! We're excited to deliver your mulch and appreciate "
        "your support of our youth fundraiser. Below are the details of your order:\n\n"
        f"Number of Bags: {order.quantity}\n"
        f"Mulch Color: {order.color.capitalize()}\n"
        f"Spreading Service: {'Yes' if spread else 'No'}\n"
        f"Total Paid: ${order.total_dollars:,.2f}\n"
        f"Delivery {'& Spreading ' if spread else ''}Date: {_delivery_dates(config)}\n\n"
        f"You can find the complete details of your order here: {base}/fundraisers/mulch/orders/{order.id}\n\n"
        "If you have any questions, please reply to this email or contact us at "
        f"{config.get('WARD_CONTACT_EMAIL')}.\n\n"
        "Thanks again for supporting our youth. Your purchase makes a difference!\n\n"
        f"{config.get('WARD_NAME')} Youth Program"
    )


class OrderNotifier:
    def __init__(self, app: Any):
        self.app = app

    @property
    def enabled(self) -> bool:
        return bool(self.app.config.get("MAIL_ENABLED"))

    def order_paid(self, order: MulchOrder) -> Optional[Future]:
        email = order.customer.email if order.customer else None
        if not self.enabled or not email:
            log.debug("order %s: confirmation email skipped (mail disabled or no address)", order.id)
            return None
        log.info("order %s: queueing confirmation email", order.id)
        return send_email_async(
            self.app,
            f"Your mulch order is confirmed ({order.quantity} bags)",
            [email],
            body=confirmation_body(order, self.app.config),
        )


__all__ = ["OrderNotifier", "confirmation_body"]
