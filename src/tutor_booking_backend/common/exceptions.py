"""
This file contains custom, application-specific exceptions.

Every scheduling error carries the HTTP status it maps to; `main.py` registers
a single handler for `SchedulingError` that turns them into JSON responses.
"""
from fastapi import status


class SchedulingError(Exception):
    """Base class for all errors raised by the scheduling engine."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    retryable: bool = False

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail or self.__class__.__doc__


class ValidationError(SchedulingError):
    """The request is malformed (e.g. start is not before end)."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(SchedulingError):
    """The requested resource does not exist."""
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransition(SchedulingError):
    """The appointment is not in a state that allows this transition."""
    status_code = status.HTTP_409_CONFLICT


class SlotUnavailable(SchedulingError):
    """The slot is no longer available. Fetch fresh slots and try again."""
    status_code = status.HTTP_409_CONFLICT
    retryable = True


class InsufficientBalance(SchedulingError):
    """The student does not have enough hours for this booking."""
    status_code = status.HTTP_402_PAYMENT_REQUIRED


class AvailabilityInUse(SchedulingError):
    """The availability window has scheduled appointments booked against it."""
    status_code = status.HTTP_409_CONFLICT


class OverlapError(SchedulingError):
    """Raised by the appointment store when a write would double-book a tutor."""
    status_code = status.HTTP_409_CONFLICT


class ReconciliationError(SchedulingError):
    """A compensating balance update failed; hours need manual reconciliation."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
