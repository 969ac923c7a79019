"""Error taxonomy shared by the engines, the store and the write path.

Each error carries the HTTP status it maps to; ``main.py`` renders them.
"""
from typing import Optional


class GreenPulseError(Exception):
    status_code = 500
    code = "ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self):
        return {"detail": self.message, "code": self.code, "field": self.field}


class ValidationError(GreenPulseError):
    """Malformed or out-of-range input. Never retried."""
    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidParameter(ValidationError):
    """A query parameter that cannot be turned into a filter."""
    code = "INVALID_PARAMETER"


class NotFoundError(GreenPulseError):
    status_code = 404
    code = "NOT_FOUND"


class OwnershipError(GreenPulseError):
    status_code = 403
    code = "OWNERSHIP_REQUIRED"


class ConflictError(GreenPulseError):
    """A write that collides with existing data, e.g. a duplicate email or like."""
    status_code = 409
    code = "CONFLICT"


class StoreError(GreenPulseError):
    status_code = 500
    code = "STORE_ERROR"

    def to_dict(self):
        return {"detail": "Internal server error", "code": self.code, "field": None}
