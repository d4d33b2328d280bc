"""
Domain errors raised by the scheduling and booking services.

Each error carries the HTTP status it maps to; a single exception handler
registered in app.main renders them as {"detail": ...} responses.
"""

from typing import Optional

from fastapi import status


class BookingSystemError(Exception):
    """Base class for all errors the core services raise on purpose."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(BookingSystemError):
    """Malformed or out-of-range input the caller can correct."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid input"


class AuthorizationError(BookingSystemError):
    """Caller does not own the bus, trip or booking being touched."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "You are not authorized to perform this action"


class NotFoundError(BookingSystemError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found"


class ConflictError(BookingSystemError):
    """Overlapping trip window, already-booked seat or reused idempotency key."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class SeatConflictError(ConflictError):
    def __init__(self, seat: int):
        self.seat = seat
        super().__init__(f"Seat {seat} is already booked")


class StorageError(BookingSystemError):
    """Persistence failure. Not retried unless transient."""

    default_detail = "Storage failure"
