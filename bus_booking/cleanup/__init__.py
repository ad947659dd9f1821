"""
Pending Booking Cleanup Module

Pending bookings hold their seats only for ``PENDING_TIMEOUT_MINUTES``.
ExpirySweeper cancels the ones past that age through the normal lifecycle
path (actor ``system``, reason ``expired``) so seats are released in the same
transaction; ExpirySweepScheduler runs it in the background every
``CLEANUP_INTERVAL_MINUTES``.
"""

from .router import router
from .sweeper import ExpirySweeper
from .scheduler import ExpirySweepScheduler
from .schemas import SweepResult, PendingStats, ExpiredBooking

__all__ = [
    "router",
    "ExpirySweeper",
    "ExpirySweepScheduler",
    "SweepResult",
    "PendingStats",
    "ExpiredBooking",
]
