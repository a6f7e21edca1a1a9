"""
Domain error taxonomy.

Services raise these; the FastAPI exception handler in ``main.py`` turns them
into ``{"detail": ..., "code": ...}`` responses with the matching status code.
"""

from typing import Optional


class AppError(Exception):
    """Base class for errors that are safe to show to API callers"""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    """Malformed or out-of-order input the caller must fix"""

    status_code = 400
    code = "validation_error"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"


class SlotConflictError(ConflictError):
    """The requested window overlaps an active appointment or a blocked period"""

    code = "slot_conflict"


class BusinessHoursError(AppError):
    """Manual booking outside the fixed clinic agenda"""

    status_code = 409
    code = "business_hours_violation"


class InvalidStateTransitionError(AppError):
    status_code = 400
    code = "invalid_state_transition"


class DeliveryError(AppError):
    """The messaging gateway could not deliver a message"""

    status_code = 502
    code = "delivery_failed"
