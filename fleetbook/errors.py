"""Booking error taxonomy.

Every error carries an HTTP-equivalent status, a machine code and a
human-readable message; the API layer renders them uniformly.
"""

from __future__ import annotations

from typing import Any


class BookingError(Exception):
    """Base class for all errors surfaced by the booking engine."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.details}


class ValidationError(BookingError):
    """Missing or malformed input the caller can fix."""

    status_code = 400
    code = "validation_error"


class NotFoundError(BookingError):
    """Tenant, vehicle, location, payment method or reservation absent."""

    status_code = 404
    code = "not_found"


class ConflictError(BookingError):
    """Interval overlap, duplicate booking or a state that no longer allows the operation."""

    status_code = 409
    code = "conflict"


class LimitExceededError(BookingError):
    """Tenant subscription inactive or monthly quota reached."""

    status_code = 403
    code = "limit_exceeded"


class InternalError(BookingError):
    """Storage or transaction failure; nothing was persisted."""

    status_code = 500
    code = "internal_error"
