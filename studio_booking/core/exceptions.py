"""
Domain errors raised by the booking engine.

The HTTP layer maps each class to a status code (see `main.py`), so services
never construct HTTP responses themselves.
"""

from typing import Optional


class BookingError(Exception):
    """Base class for all booking engine errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Malformed or missing input. Recoverable by correcting the request."""

    status_code = 400


class InvalidWindow(ValidationError):
    """Time window whose end is not after its start."""


class NotFound(BookingError):
    status_code = 404


class Forbidden(BookingError):
    status_code = 403


class ResourceConflict(BookingError):
    """A room, equipment item or staff member is already reserved for the window."""

    status_code = 409

    def __init__(self, kind: str, resource_id: int, name: Optional[str] = None):
        label = {"room": "Room", "equipment": "Equipment", "staff": "Staff member"}[kind]
        subject = f"{label} {name}" if name else f"{label} {resource_id}"
        super().__init__(f"{subject} is not available for the requested time")
        self.kind = kind
        self.resource_id = resource_id


class InvalidTransition(BookingError):
    """Lifecycle rule violated, e.g. confirming a booking that is not pending."""

    status_code = 400


class InternalError(BookingError):
    """Persistence or directory failure. Never the caller's fault."""

    status_code = 500
