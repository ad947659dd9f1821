from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session

from bus_booking.admin.schemas import BookingStats, StatsPeriod
from bus_booking.bookings.authorization import Actor
from bus_booking.bookings.booking_service import BookingService, PaymentSource
from bus_booking.bookings.schemas import BookingStatus
from bus_booking.exceptions import NotFoundError, ValidationError
from bus_booking.models import Booking, Schedule
from bus_booking.seats.ledger import SeatLedger
from bus_booking.seats.schemas import SeatToggleRequest, SeatToggleResult
from bus_booking.utils import as_naive_utc, utcnow

class AdminBookingService:
    """Privileged booking operations for admin and manager principals.

    Overrides relax who may call a transition, never the seat-ledger
    consistency: every write goes through BookingService or SeatLedger.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.booking_service = BookingService(db, clock)

    def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        user_id: Optional[int] = None,
        schedule_id: Optional[int] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Booking], int]:
        query = self.db.query(Booking)
        if status:
            query = query.filter(Booking.status == status.value)
        if user_id:
            query = query.filter(Booking.user_id == user_id)
        if schedule_id:
            query = query.filter(Booking.schedule_id == schedule_id)

        total = query.count()
        bookings = (
            query.order_by(Booking.booked_at.desc(), Booking.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return bookings, total

    def get_booking_stats(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> BookingStats:
        """Counts by status and paid revenue; both dates bound ``booked_at`` inclusively"""
        if (start_date is None) != (end_date is None):
            raise ValidationError("startDate and endDate must be given together")
        if start_date is not None:
            start_date, end_date = as_naive_utc(start_date), as_naive_utc(end_date)
            if start_date > end_date:
                raise ValidationError("startDate must not be after endDate")

        query = self.db.query(Booking)
        if start_date is not None:
            query = query.filter(Booking.booked_at.between(start_date, end_date))

        counts = dict(
            query.with_entities(Booking.status, func.count(Booking.id)).group_by(Booking.status).all()
        )
        by_status = {status.value: counts.get(status.value, 0) for status in BookingStatus}

        revenue = query.with_entities(func.coalesce(func.sum(Booking.total_price), 0)).filter(
            Booking.status.in_([BookingStatus.PAID.value, BookingStatus.COMPLETED.value])
        ).scalar()

        return BookingStats(
            total=sum(by_status.values()),
            by_status=by_status,
            paid_revenue=Decimal(revenue or 0),
            period=StatsPeriod(start_date=start_date, end_date=end_date) if start_date is not None else None
        )

    def update_status(self, booking_id: int, status: BookingStatus, reason: Optional[str], admin: Actor) -> Booking:
        """Move a booking to ``status`` through the matching lifecycle operation"""
        logger.info(f"Admin {admin.id} ({admin.role}) sets booking {booking_id} to {status.value}; reason={reason}")

        if status == BookingStatus.PAID:
            source = PaymentSource(kind="admin", reference=f"admin:{admin.id}")
            return self.booking_service.mark_paid(booking_id, source, actor=admin)
        if status == BookingStatus.CANCELLED:
            return self.force_cancel(booking_id, reason, admin)
        if status == BookingStatus.COMPLETED:
            return self.booking_service.complete_booking(booking_id, admin, reason=reason)

        raise ValidationError(f"Bookings cannot be moved back to {status.value}")

    def force_cancel(self, booking_id: int, reason: Optional[str], admin: Actor) -> Booking:
        logger.info(f"Admin {admin.id} force-cancels booking {booking_id}; reason={reason}")
        return self.booking_service.cancel_booking(booking_id, admin, reason=reason)

    def toggle_seats(self, schedule_id: int, request: SeatToggleRequest, admin: Actor) -> SeatToggleResult:
        """Enable or disable seats of a schedule"""
        schedule = self.db.query(Schedule).filter(Schedule.id == schedule_id).first()
        if not schedule:
            raise NotFoundError(f"Schedule {schedule_id} not found")

        ledger = SeatLedger(self.db)
        with ledger.transaction(schedule_id):
            seats = ledger.set_enabled(schedule_id, request.seat_ids, request.enabled)
            if request.admin_note:
                schedule.admin_note = request.admin_note
            updated = [seat.id for seat in seats]

        logger.info(
            f"Admin {admin.id} {'enabled' if request.enabled else 'disabled'} seats {updated} "
            f"on schedule {schedule_id}; note={request.admin_note}"
        )
        return SeatToggleResult(schedule_id=schedule_id, updated_seat_ids=updated, enabled=request.enabled)
