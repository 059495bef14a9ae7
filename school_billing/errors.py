"""Business errors raised by the billing and contract services.

Each error carries the HTTP status it maps to and a short machine-readable
``code`` so clients can tell apart, for example, a contract that is not signed
yet from one that was already validated.
"""
from typing import Any, Optional


class BillingError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BillingError):
    status_code = 400
    code = "validation_error"


class NotFoundError(BillingError):
    status_code = 404
    code = "not_found"


class ConflictError(BillingError):
    status_code = 409
    code = "conflict"


class DuplicateChargeError(ConflictError):
    code = "duplicate_charge"


class ForbiddenError(BillingError):
    status_code = 403
    code = "forbidden"


class InternalError(BillingError):
    status_code = 500
    code = "internal_error"
