# fundraiser/blueprints/payments.py
"""
Provider-facing endpoints.

POST /payments/stripe/webhook   signed Stripe deliveries (raw body + Stripe-Signature)
GET  /payments/config           publishable key / mode for the browser
GET  /payments/health           db + provider configuration check
"""

from __future__ import annotations

import time
from typing import Any, Dict

from flask import Blueprint, current_app, request
from sqlalchemy import select, text

from fundraiser.blueprints import json_ok, json_response
from fundraiser.extensions import db
from fundraiser.models import StripeEvent
from fundraiser.services import paypal_gateway, stripe_gateway, webhook_ingestor

bp = Blueprint("payments", __name__, url_prefix="/payments")

_PROCESS_START = time.time()


@bp.post("/stripe/webhook")
def stripe_webhook():
    # Raw bytes: the signature covers the exact payload Stripe sent.
    payload = request.get_data(cache=False, as_text=False)
    sig = (request.headers.get("Stripe-Signature") or "").strip() or None

    result = webhook_ingestor().handle(payload, sig)
    return json_response(result.body, result.status_code)


@bp.get("/config")
def payments_config():
    gw = stripe_gateway()
    pp = paypal_gateway()
    return json_ok(
        {
            "publishableKey": current_app.config.get("STRIPE_PUBLISHABLE_KEY") or "",
            "mode": gw.mode,
            "currency": gw.currency,
            "paypalClientId": pp.client_id if pp.configured else "",
            "paypalEnabled": pp.configured,
        }
    )


def _db_check() -> Dict[str, Any]:
    t0 = time.perf_counter()
    try:
        db.session.execute(text("SELECT 1"))
        db.session.execute(select(StripeEvent.id).limit(1)).all()
        out: Dict[str, Any] = {"ok": True}
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception("payments.health: db check failed")
        out = {"ok": False, "error": f"{type(e).__name__}: {e}"}
    out["latencyMs"] = int((time.perf_counter() - t0) * 1000)
    return out


@bp.get("/health")
def payments_health():
    gw = stripe_gateway()
    components: Dict[str, Any] = {
        "db": _db_check(),
        "stripe": {
            "ok": gw.configured,
            "mode": gw.mode,
            "webhookSecretPresent": bool(gw.webhook_secret),
        },
        "paypal": {"ok": True, "enabled": paypal_gateway().configured},
    }
    if not components["db"]["ok"]:
        status = "error"
    elif not components["stripe"]["ok"] or not components["stripe"]["webhookSecretPresent"]:
        status = "degraded"
    else:
        status = "ok"

    return json_response(
        {
            "ok": status != "error",
            "status": status,
            "uptimeS": int(time.time() - _PROCESS_START),
            "components": components,
        },
        503 if status == "error" else 200,
    )
