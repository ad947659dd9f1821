"""Domain errors raised by the booking subsystem.

Every error carries the HTTP status it maps to and an optional ``extra``
payload merged into the JSON error body.
"""

from typing import Any, Dict, Iterable, List, Optional


class DomainError(Exception):
    """Base domain error with customizable message and status code."""

    def __init__(self, message: str, status_code: int = 400, extra: Optional[Dict[str, Any]] = None):
        self.message = message
        self.status_code = status_code
        self.extra = extra or {}
        super().__init__(message)


class ValidationError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, 400)


class NotFoundError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, 404)


class PermissionDeniedError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, 403)


class SeatUnavailableError(DomainError):
    """Some requested seats are held, booked or disabled."""

    def __init__(self, seat_ids: Iterable[int], seat_numbers: Optional[Iterable[str]] = None):
        self.seat_ids: List[int] = list(seat_ids)
        self.seat_numbers: List[str] = list(seat_numbers or [])
        label = ', '.join(self.seat_numbers) if self.seat_numbers else ', '.join(str(s) for s in self.seat_ids)
        super().__init__(
            f"Seats {label} are not available",
            400,
            {"seat_ids": self.seat_ids, "seat_numbers": self.seat_numbers},
        )


class InvalidStateError(DomainError):
    """Illegal status transition for a booking or seat."""

    def __init__(self, message: str, current_status: Optional[str] = None):
        self.current_status = current_status
        extra = {"current_status": current_status} if current_status else None
        super().__init__(message, 400, extra)


class InvalidSignatureError(DomainError):
    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, 400)


class StaleConfirmationError(DomainError):
    """Payment event arrived for a booking that is no longer pending."""

    def __init__(self, message: str, booking_id: Optional[int] = None, current_status: Optional[str] = None):
        self.booking_id = booking_id
        self.current_status = current_status
        super().__init__(message, 409, {"booking_id": booking_id, "current_status": current_status})
