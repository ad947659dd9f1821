"""
Booking Lifecycle Module

Creates bookings and moves them through their status machine:

    pending --(payment confirmed)--> paid --(trip completes)--> completed
    pending --(expiry | user cancel | gateway cancel)--> cancelled
    paid    --(admin correction)--> cancelled

Every transition runs inside one seat-ledger transaction, so the booking row
and the seat rows it claims are committed or rolled back together.

Key Components:
- booking_service.py: BookingService, the lifecycle manager
- authorization.py: Actor and can_transition, the single capability check
- router.py: customer-facing booking endpoints
- schemas.py: Pydantic models for booking requests and responses
"""

from .router import router
from .booking_service import BookingService, PaymentSource
from .authorization import Actor, can_transition
from .schemas import (
    BookingCreateRequest, BookingCancellationRequest, BookingDetail, BookingStatus,
    PaymentStatus, ActorKind
)

__all__ = [
    "router",
    "BookingService",
    "PaymentSource",
    "Actor",
    "can_transition",
    "BookingCreateRequest",
    "BookingCancellationRequest",
    "BookingDetail",
    "BookingStatus",
    "PaymentStatus",
    "ActorKind",
]
