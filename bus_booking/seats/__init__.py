"""
Seat Ledger Module

Authoritative seat state per schedule (available / pending / booked /
blocked). Reservation is all-or-nothing and linearized per schedule by an
in-process lock plus row-level ``SELECT ... FOR UPDATE``.
"""

from .router import router
from .ledger import SeatLedger, ReservationResult, schedule_locks, seat_price
from .schemas import SeatStatus, SeatInfo, SeatMap, SeatToggleRequest, SeatToggleResult

__all__ = [
    "router",
    "SeatLedger",
    "ReservationResult",
    "schedule_locks",
    "seat_price",
    "SeatStatus",
    "SeatInfo",
    "SeatMap",
    "SeatToggleRequest",
    "SeatToggleResult",
]
