"""Error taxonomy shared by the billing services.

Services raise these; ``main.py`` renders them as ``{"error", "detail"}``
JSON with the status code carried by the class.
"""
from __future__ import annotations

from typing import Any


class BillingError(Exception):
    kind = "billing_error"
    status_code = 400

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class NotFound(BillingError):
    kind = "not_found"
    status_code = 404


class InsufficientFunds(BillingError):
    kind = "insufficient_funds"
    status_code = 409


class ValidationError(BillingError):
    kind = "validation_error"
    status_code = 422


class Conflict(BillingError):
    kind = "conflict"
    status_code = 409


class UpstreamUnavailable(BillingError):
    kind = "upstream_unavailable"
    status_code = 503


class Unauthorized(BillingError):
    kind = "unauthorized"
    status_code = 401
