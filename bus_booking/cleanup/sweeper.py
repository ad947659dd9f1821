from datetime import datetime, timedelta
from typing import Callable, List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from bus_booking.bookings.authorization import Actor
from bus_booking.bookings.booking_service import BookingService
from bus_booking.bookings.schemas import BookingStatus, PaymentStatus
from bus_booking.cleanup.schemas import ExpiredBooking, PendingStats, SweepResult
from bus_booking.config import settings
from bus_booking.exceptions import InvalidStateError
from bus_booking.models import Booking, User
from bus_booking.utils import utcnow

EXPIRED_REASON = "expired"


class ExpirySweeper:
    """Cancels pending bookings older than the pending timeout"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow, timeout_minutes: Optional[int] = None):
        self.db = db
        self.clock = clock
        self.timeout_minutes = timeout_minutes or settings.PENDING_TIMEOUT_MINUTES
        self.booking_service = BookingService(db, clock)

    def _expired_query(self, now: datetime):
        cutoff = now - timedelta(minutes=self.timeout_minutes)
        return self.db.query(Booking).filter(
            Booking.status == BookingStatus.PENDING.value,
            Booking.booked_at <= cutoff
        )

    def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """Cancel every expired pending booking and release its seats.

        Each booking is cancelled in its own transaction; a failure is logged
        and the batch moves on.
        """
        now = now or self.clock()
        booking_ids = [
            booking_id for (booking_id,) in
            self._expired_query(now).with_entities(Booking.id).order_by(Booking.booked_at, Booking.id).all()
        ]
        logger.info(f"Expiry sweep started: {len(booking_ids)} pending bookings older than {self.timeout_minutes} min")

        cancelled: List[int] = []
        skipped = 0
        failed = 0

        for booking_id in booking_ids:
            try:
                self.booking_service.cancel_booking(
                    booking_id, Actor.system(), reason=EXPIRED_REASON, payment_status=PaymentStatus.EXPIRED
                )
                cancelled.append(booking_id)
            except InvalidStateError as e:
                # Paid or cancelled since it was selected
                skipped += 1
                logger.info(f"Skipped expiring booking {booking_id}: {e.message}")
            except Exception:
                failed += 1
                self.db.rollback()
                logger.exception(f"Failed to expire booking {booking_id}")

        logger.info(f"Expiry sweep finished: cancelled={len(cancelled)} skipped={skipped} failed={failed}")
        return SweepResult(
            processed=len(cancelled),
            failed=failed,
            skipped=skipped,
            cancelled_booking_ids=cancelled,
            timestamp=now
        )

    def get_pending_stats(self, now: Optional[datetime] = None) -> PendingStats:
        now = now or self.clock()
        pending = self.db.query(Booking).filter(Booking.status == BookingStatus.PENDING.value)
        expiring_cutoff = now - timedelta(minutes=settings.EXPIRING_SOON_MINUTES)

        return PendingStats(
            total_pending=pending.count(),
            expiring_soon=pending.filter(Booking.booked_at <= expiring_cutoff).count(),
            expired=self._expired_query(now).count(),
            timeout_minutes=self.timeout_minutes
        )

    def get_expired_pending_bookings(self, now: Optional[datetime] = None) -> List[ExpiredBooking]:
        now = now or self.clock()
        rows = (
            self._expired_query(now)
            .join(User, User.id == Booking.user_id)
            .with_entities(Booking, User.full_name, User.email)
            .order_by(Booking.booked_at)
            .all()
        )

        return [
            ExpiredBooking(
                id=booking.id,
                user_id=booking.user_id,
                user_name=full_name,
                user_email=email,
                schedule_id=booking.schedule_id,
                total_price=booking.total_price,
                booked_at=booking.booked_at,
                minutes_since_booking=int((now - booking.booked_at).total_seconds() // 60)
            )
            for booking, full_name, email in rows
        ]
