"""
Domain error taxonomy for the booking engine.

Services raise these instead of HTTP errors so the engine can be driven from
anything (routes, scripts, tests). The API layer renders them through a single
exception handler registered in main.py.

Every error carries a human-readable message naming the violated rule and an
optional context dict (conflicting ids, ranges) the caller can use to offer
an alternative slot.
"""

from typing import Any


class BookingError(Exception):
    status_code: int = 400
    code: str = "booking_error"

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.code, **self.context}


class ValidationError(BookingError):
    """Malformed input: bad date/time ordering, unknown room, missing field."""

    status_code = 422
    code = "validation_error"


class NotFoundError(BookingError):
    status_code = 404
    code = "not_found"


class ForbiddenError(BookingError):
    status_code = 403
    code = "forbidden"


class ConflictError(BookingError):
    """Overlap, capacity or duplicate membership."""

    status_code = 409
    code = "conflict"


class ResourceBusyError(ConflictError):
    """A scoped lock could not be acquired within LOCK_TIMEOUT_SECONDS."""

    code = "resource_busy"


class InvalidStateError(BookingError):
    """The operation is illegal for the entity's current status."""

    status_code = 400
    code = "invalid_state"
