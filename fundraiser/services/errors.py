# fundraiser/services/errors.py
"""Payment lifecycle error taxonomy; each error knows the HTTP status it surfaces as."""

from __future__ import annotations

from typing import Any, Dict, Optional


class PaymentError(Exception):
    http_status = 400
    code = "payment_error"

    def __init__(self, message: str, *, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = dict(extra or {})


class NotFound(PaymentError):
    """Referenced record id / session id does not exist."""

    http_status = 404
    code = "not_found"


class InvalidSignature(PaymentError):
    """Webhook payload failed cryptographic verification. Permanent for that request."""

    http_status = 400
    code = "invalid_signature"


class InvalidTransition(PaymentError):
    http_status = 409
    code = "invalid_transition"

    def __init__(self, message: str, *, current: Optional[str] = None, requested: Optional[str] = None):
        super().__init__(message, extra={"current": current, "requested": requested})
        self.current = current
        self.requested = requested


class PaymentRefConflict(InvalidTransition):
    """A provider reference is already recorded; references are written once."""

    code = "payment_ref_conflict"


class CorrelationMismatch(PaymentError):
    """Confirmation refers to a different record, amount, or currency. Security relevant."""

    http_status = 409
    code = "correlation_mismatch"


class GatewayUnavailable(PaymentError):
    """Provider misconfigured or unreachable; safe to retry later."""

    http_status = 503
    code = "gateway_unavailable"


__all__ = [
    "CorrelationMismatch",
    "GatewayUnavailable",
    "InvalidSignature",
    "InvalidTransition",
    "NotFound",
    "PaymentError",
    "PaymentRefConflict",
]
