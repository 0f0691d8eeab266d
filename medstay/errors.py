"""
Typed errors raised by the booking engine.

Every error carries a stable ``code`` so callers can branch on the kind of
failure, and the HTTP status the API layer answers with.
"""

from typing import Any, Dict, Optional


class BookingEngineError(Exception):
    code = "BOOKING_ENGINE_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BookingEngineError):
    """Malformed input: bad date order, guest count out of bounds, bad price."""
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFound(BookingEngineError):
    code = "NOT_FOUND"
    status_code = 404


class BookingConflict(BookingEngineError):
    """Requested dates overlap an active booking."""
    code = "BOOKING_CONFLICT"
    status_code = 409


class DatesUnavailable(BookingConflict):
    """Requested dates include nights blocked on the calendar."""
    code = "DATES_UNAVAILABLE"


class InvalidTransition(BookingEngineError):
    code = "INVALID_TRANSITION"
    status_code = 409


class AlreadyFinalized(InvalidTransition):
    code = "ALREADY_FINALIZED"


class TooLateToCancel(InvalidTransition):
    code = "TOO_LATE_TO_CANCEL"


class PersistenceError(BookingEngineError):
    """Underlying store failure; never retried by the engine."""
    code = "PERSISTENCE_ERROR"
    status_code = 503


class LockUnavailable(PersistenceError):
    code = "LOCK_UNAVAILABLE"
