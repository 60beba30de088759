# fundraiser/blueprints/admin.py
"""
Admin JSON API (bearer token from ADMIN_API_TOKENS, comma separated).

GET  /admin/api/orders?year=YYYY
GET  /admin/api/donations?year=YYYY
GET  /admin/api/stats?year=YYYY
POST /admin/api/orders/<id>/status   {"status": "FULFILLED"}
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime
from functools import wraps
from typing import Optional, Set

from flask import Blueprint, current_app, request
from werkzeug.exceptions import BadRequest, Unauthorized

from fundraiser.blueprints import json_ok, request_payload
from fundraiser.services import order_lifecycle, order_store
from fundraiser.services.reporting import (
    donation_summary,
    list_donations_for_year,
    list_orders_for_year,
    neighborhood_stats,
    order_row,
    revenue_summary,
)

log = logging.getLogger(__name__)

bp = Blueprint("admin", __name__, url_prefix="/admin/api")


def _api_tokens() -> Set[str]:
    raw = str(current_app.config.get("ADMIN_API_TOKENS") or "")
    return {t.strip() for t in raw.split(",") if t.strip()}


def _bearer_token() -> Optional[str]:
    h = request.headers.get("Authorization", "")
    return h.split(" ", 1)[1].strip() if h.lower().startswith("bearer ") else None


def require_admin(fn):
    @wraps(fn)
    def wrapped(*args, **kwargs):
        tok = _bearer_token()
        if not tok:
            raise Unauthorized("Missing bearer token.")
        if not any(hmac.compare_digest(tok, known) for known in _api_tokens()):
            log.warning("admin: rejected bearer token ending %s", tok[-4:])
            raise Unauthorized("Invalid bearer token.")
        return fn(*args, **kwargs)

    return wrapped


def _year_arg() -> int:
    raw = (request.args.get("year") or "").strip()
    if not raw:
        return datetime.now().year
    if not raw.isdigit():
        raise BadRequest("year must be a number")
    return int(raw)


@bp.get("/orders")
@require_admin
def list_orders():
    year = _year_arg()
    orders = list_orders_for_year(order_store(), year)
    return json_ok({"year": year, "orders": [order_row(o) for o in orders]})


@bp.get("/donations")
@require_admin
def list_donations():
    year = _year_arg()
    donations = list_donations_for_year(order_store(), year)
    return json_ok({"year": year, "donations": [d.as_dict() for d in donations]})


@bp.get("/stats")
@require_admin
def stats():
    year = _year_arg()
    store = order_store()
    orders = list_orders_for_year(store, year)
    return json_ok(
        {
            "year": year,
            "revenue": revenue_summary(orders).as_dict(),
            "neighborhoods": [
                s.as_dict() for s in neighborhood_stats(orders, current_app.config.get("WARD_NEIGHBORHOODS") or [])
            ],
            "donations": donation_summary(list_donations_for_year(store, year)),
        }
    )


@bp.post("/orders/<order_id>/status")
@require_admin
def update_status(order_id: str):
    status = str(request_payload().get("status") or "").strip()
    if not status:
        raise BadRequest("status is required")
    result = order_lifecycle().transition(order_id, status)
    return json_ok({"order": order_row(result.order), "changed": result.changed})
