"""
Admin Override Module

Privileged booking operations for ``admin`` and ``manager`` principals:

- Booking listing with status/user/schedule filters and status counts
- Force mark-paid for cash payments, force cancel of pending or paid
  bookings (reason required) and completion of paid bookings
- Enabling and disabling seats of a schedule

Overrides change who may request a transition. The transition itself still
runs through BookingService and SeatLedger in one transaction.
"""

from .router import router
from .service import AdminBookingService
from .schemas import BookingStatusUpdateRequest, AdminCancelRequest, BookingStats

__all__ = [
    "router",
    "AdminBookingService",
    "BookingStatusUpdateRequest",
    "AdminCancelRequest",
    "BookingStats",
]
