# fundraiser/blueprints/__init__.py
# Shared JSON/request helpers for the HTTP surface.
from __future__ import annotations

from typing import Any, Dict, Optional, cast

from flask import current_app, jsonify, request


def request_payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict) and data:
        return cast(Dict[str, Any], data)
    if request.form:
        return cast(Dict[str, Any], request.form.to_dict(flat=True))
    return {}


def json_response(payload: Dict[str, Any], status: int = 200):
    resp = jsonify(payload)
    resp.status_code = int(status)
    resp.headers.setdefault("Cache-Control", "no-store, no-cache, must-revalidate, max-age=0")
    return resp


def json_ok(payload: Dict[str, Any], status: int = 200):
    payload.setdefault("ok", True)
    return json_response(payload, status)


def json_error(message: str, status: int, extra: Optional[Dict[str, Any]] = None):
    body: Dict[str, Any] = {"ok": False, "error": str(message)}
    if extra:
        for k, v in extra.items():
            body.setdefault(k, v)
    return json_response(body, status)


def base_url_from_request() -> str:
    base = (current_app.config.get("PUBLIC_BASE_URL") or "").strip().rstrip("/")
    if base:
        return base
    return (request.host_url or "").rstrip("/")


__all__ = ["base_url_from_request", "json_error", "json_ok", "json_response", "request_payload"]
