"""
Typed failures raised by the order and reservation managers.

Each error carries a machine-checkable ``kind`` plus the HTTP status the API
layer maps it to, so route handlers never translate errors by hand.
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    kind = "ServiceError"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, "details": self.details}


class ValidationError(ServiceError):
    """Missing or malformed required field, detected before any write."""
    kind = "ValidationError"
    status_code = 400


class InvalidReference(ServiceError):
    kind = "InvalidReference"
    status_code = 400


class Conflict(ServiceError):
    kind = "Conflict"
    status_code = 409


class InvalidStatus(ServiceError):
    kind = "InvalidStatus"
    status_code = 400


class NotFound(ServiceError):
    kind = "NotFound"
    status_code = 404


class NoOp(ServiceError):
    kind = "NoOp"
    status_code = 400


class StoreFailure(ServiceError):
    """Underlying transactional failure. Raised only after rollback."""
    kind = "StoreFailure"
    status_code = 500
