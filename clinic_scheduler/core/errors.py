"""Errors raised by the scheduling core.

Every error is recoverable by the caller and carries the HTTP status the
routers translate it to.
"""


class SchedulingError(Exception):
    """Base class for scheduling failures."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(SchedulingError):
    """Doctor, slot, appointment or other record is absent."""

    status_code = 404


class Conflict(SchedulingError):
    """Slot at capacity, blocked, or the reservation race was lost."""

    status_code = 409


class InvalidTransition(SchedulingError):
    """Appointment status change not allowed from the current status."""

    status_code = 409


class InvalidWindow(SchedulingError):
    """Availability window or schedule block with start >= end, or bad fields."""

    status_code = 400


class InactiveDoctor(SchedulingError):
    status_code = 409


class Unavailable(SchedulingError):
    """Storage failure; the unit of work was rolled back."""

    status_code = 503
