from typing import Callable, List, Optional, Tuple
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import math

from loguru import logger
from sqlalchemy.orm import Session

from bus_booking.bookings.authorization import Actor, can_transition
from bus_booking.bookings.schemas import (
    ActorKind, BookedSeat, BookingCreateRequest, BookingDetail, BookingStatus, PaymentStatus
)
from bus_booking.config import settings
from bus_booking.exceptions import (
    InvalidStateError, NotFoundError, PermissionDeniedError, SeatUnavailableError,
    StaleConfirmationError, ValidationError
)
from bus_booking.models import Booking, BookingSeat, BookingStatusHistory, Schedule, Stop, User
from bus_booking.seats.ledger import SeatLedger, seat_price
from bus_booking.utils import utcnow

TERMINAL_STATUSES = {BookingStatus.CANCELLED.value, BookingStatus.COMPLETED.value}

@dataclass(frozen=True)
class PaymentSource:
    """Where a payment confirmation came from"""
    kind: str  # webhook / callback / admin
    reference: Optional[str] = None
    payment_request_id: Optional[str] = None

class BookingService:
    """Booking lifecycle: pending -> paid -> completed, pending/paid -> cancelled"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.ledger = SeatLedger(db)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create_booking(self, request: BookingCreateRequest, actor: Actor) -> Booking:
        """Reserve the requested seats and persist a pending booking.

        Raises NotFoundError for an unknown user, schedule, stop or seat,
        ValidationError for a schedule that is not open for booking, and
        SeatUnavailableError naming every seat that is already held.
        """
        now = self.clock()
        user_id = request.user_id
        # Admin ids live in their own table and never name a customer
        if user_id is None and actor.kind == ActorKind.USER:
            user_id = actor.id

        if user_id is None:
            raise ValidationError("userId is required")
        if actor.kind == ActorKind.USER and user_id != actor.id:
            raise PermissionDeniedError("Cannot create a booking for another user")
        if len(request.seat_ids) > settings.MAX_SEATS_PER_BOOKING:
            raise ValidationError(f"Maximum {settings.MAX_SEATS_PER_BOOKING} seats can be booked at once")

        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        schedule = self.db.query(Schedule).filter(Schedule.id == request.schedule_id).first()
        if not schedule:
            raise NotFoundError(f"Schedule {request.schedule_id} not found")
        self._ensure_bookable(schedule, now)
        self._ensure_stops(schedule, request.pickup_stop_id, request.dropoff_stop_id)

        with self.ledger.transaction(schedule.id):
            booking = Booking(
                user_id=user_id,
                schedule_id=schedule.id,
                pickup_stop_id=request.pickup_stop_id,
                dropoff_stop_id=request.dropoff_stop_id,
                total_price=Decimal("0"),
                status=BookingStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=request.payment_method,
                booked_at=now
            )
            self.db.add(booking)
            self.db.flush()

            result = self.ledger.try_reserve(schedule.id, request.seat_ids, holder_id=booking.id, now=now)
            if not result.success:
                raise SeatUnavailableError(result.conflicting_seat_ids, result.conflicting_seat_numbers)

            total_price = Decimal("0")
            for position, seat in enumerate(result.seats):
                price = seat_price(seat, schedule)
                total_price += price
                self.db.add(BookingSeat(booking_id=booking.id, seat_id=seat.id, position=position, price=price))
            booking.total_price = total_price

            self._record_history(booking, None, BookingStatus.PENDING, actor, None, now)

        logger.info(
            f"Booking {booking.id} created for user {user_id} on schedule {schedule.id} "
            f"seats={request.seat_ids} total={total_price}"
        )
        return booking

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def cancel_booking(
        self,
        booking_id: int,
        actor: Actor,
        reason: Optional[str] = None,
        payment_status: Optional[PaymentStatus] = None
    ) -> Booking:
        """Cancel a booking and release its seats in one transaction"""
        booking = self.get_booking(booking_id)

        with self.ledger.transaction(booking.schedule_id):
            booking = self._lock_booking(booking_id)
            self._check_transition(actor, booking, BookingStatus.CANCELLED)
            if actor.kind == ActorKind.ADMIN and not (reason and reason.strip()):
                raise ValidationError("A reason is required when an admin cancels a booking")

            now = self.clock()
            previous = booking.status
            self.ledger.release(booking.schedule_id, booking.seat_ids, holder_id=booking.id)

            booking.status = BookingStatus.CANCELLED.value
            booking.cancel_reason = reason
            if payment_status is not None:
                booking.payment_status = payment_status.value
            elif previous == BookingStatus.PAID.value:
                booking.payment_status = PaymentStatus.REFUNDED.value
            else:
                booking.payment_status = PaymentStatus.CANCELLED.value

            self._record_history(booking, previous, BookingStatus.CANCELLED, actor, reason, now)

        logger.info(f"Booking {booking_id} cancelled by {actor.kind.value}:{actor.id} ({previous} -> cancelled) reason={reason}")
        return booking

    def mark_paid(self, booking_id: int, source: PaymentSource, actor: Optional[Actor] = None) -> Booking:
        """Confirm payment; a repeat with the same payment reference is a no-op"""
        actor = actor or Actor.system()
        booking = self.get_booking(booking_id)

        with self.ledger.transaction(booking.schedule_id):
            booking = self._lock_booking(booking_id)

            if booking.status in (BookingStatus.PAID.value, BookingStatus.COMPLETED.value):
                if source.reference is not None and booking.payment_reference == source.reference:
                    logger.info(f"Duplicate payment confirmation for booking {booking_id} ignored ({source.kind})")
                    return booking
                raise StaleConfirmationError(
                    f"Booking {booking_id} is already {booking.status} under a different payment reference",
                    booking_id=booking_id,
                    current_status=booking.status
                )
            if booking.status == BookingStatus.CANCELLED.value:
                logger.warning(f"Payment confirmation for cancelled booking {booking_id} from {source.kind}")
                raise StaleConfirmationError(
                    f"Booking {booking_id} is cancelled and cannot be marked paid",
                    booking_id=booking_id,
                    current_status=booking.status
                )

            self._check_transition(actor, booking, BookingStatus.PAID)

            now = self.clock()
            self.ledger.confirm(booking.schedule_id, booking.seat_ids, holder_id=booking.id)
            booking.status = BookingStatus.PAID.value
            booking.payment_status = PaymentStatus.PAID.value
            booking.payment_reference = source.reference
            booking.payment_completed_at = now
            if source.payment_request_id and not booking.payment_request_id:
                booking.payment_request_id = source.payment_request_id

            self._record_history(booking, BookingStatus.PENDING.value, BookingStatus.PAID, actor, f"payment via {source.kind}", now)

        logger.info(f"Booking {booking_id} marked paid via {source.kind} reference={source.reference}")
        return booking

    def complete_booking(self, booking_id: int, actor: Actor, reason: Optional[str] = None) -> Booking:
        """Close a paid booking after departure"""
        booking = self.get_booking(booking_id)

        with self.ledger.transaction(booking.schedule_id):
            booking = self._lock_booking(booking_id)
            self._check_transition(actor, booking, BookingStatus.COMPLETED)

            booking.status = BookingStatus.COMPLETED.value
            self._record_history(booking, BookingStatus.PAID.value, BookingStatus.COMPLETED, actor, reason, self.clock())

        logger.info(f"Booking {booking_id} completed by {actor.kind.value}:{actor.id}")
        return booking

    def attach_payment_request(
        self,
        booking_id: int,
        order_code: str,
        payment_request_id: Optional[str] = None,
        payment_method: Optional[str] = None
    ) -> Booking:
        """Store the gateway order code on a pending booking"""
        booking = self.get_booking(booking_id)

        with self.ledger.transaction(booking.schedule_id):
            booking = self._lock_booking(booking_id)
            if booking.status != BookingStatus.PENDING.value:
                raise InvalidStateError(
                    f"Booking {booking_id} cannot be paid: status is {booking.status}",
                    current_status=booking.status
                )
            booking.order_code = order_code
            booking.payment_request_id = payment_request_id
            if payment_method:
                booking.payment_method = payment_method

        return booking

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_booking(self, booking_id: int) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def get_booking_by_order_code(self, order_code) -> Optional[Booking]:
        return self.db.query(Booking).filter(Booking.order_code == str(order_code)).first()

    def get_booking_by_payment_request_id(self, payment_request_id: str) -> Optional[Booking]:
        return self.db.query(Booking).filter(Booking.payment_request_id == payment_request_id).first()

    def get_user_bookings(self, user_id: int, page: int = 1, limit: int = 10) -> Tuple[List[Booking], int]:
        query = self.db.query(Booking).filter(Booking.user_id == user_id)
        total = query.count()
        bookings = (
            query.order_by(Booking.booked_at.desc(), Booking.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return bookings, total

    def to_detail(self, booking: Booking) -> BookingDetail:
        expires_at = None
        if booking.status == BookingStatus.PENDING.value:
            expires_at = booking.booked_at + timedelta(minutes=settings.PENDING_TIMEOUT_MINUTES)

        return BookingDetail(
            id=booking.id,
            user_id=booking.user_id,
            schedule_id=booking.schedule_id,
            status=BookingStatus(booking.status),
            payment_status=PaymentStatus(booking.payment_status) if booking.payment_status else None,
            payment_method=booking.payment_method,
            total_price=booking.total_price,
            booked_at=booking.booked_at,
            expires_at=expires_at,
            pickup_stop_id=booking.pickup_stop_id,
            dropoff_stop_id=booking.dropoff_stop_id,
            order_code=booking.order_code,
            payment_request_id=booking.payment_request_id,
            payment_completed_at=booking.payment_completed_at,
            cancel_reason=booking.cancel_reason,
            departure_time=booking.schedule.departure_time if booking.schedule else None,
            seats=[
                BookedSeat(
                    seat_id=bs.seat_id,
                    seat_number=bs.seat.seat_number,
                    floor=bs.seat.floor,
                    price=bs.price
                )
                for bs in booking.booking_seats
            ]
        )

    @staticmethod
    def total_pages(total: int, limit: int) -> int:
        return math.ceil(total / limit) if limit else 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _lock_booking(self, booking_id: int) -> Booking:
        booking = (
            self.db.query(Booking)
            .filter(Booking.id == booking_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not booking:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def _check_transition(self, actor: Actor, booking: Booking, target: BookingStatus):
        if booking.status in TERMINAL_STATUSES:
            raise InvalidStateError(
                f"Booking {booking.id} cannot be moved to {target.value}: status is {booking.status}",
                current_status=booking.status
            )
        if can_transition(actor, booking, target):
            return
        if actor.kind == ActorKind.USER and booking.user_id != actor.id:
            raise PermissionDeniedError(f"Booking {booking.id} does not belong to user {actor.id}")
        raise InvalidStateError(
            f"Booking {booking.id} cannot be moved to {target.value} by {actor.kind.value}: status is {booking.status}",
            current_status=booking.status
        )

    def _ensure_bookable(self, schedule: Schedule, now: datetime):
        if schedule.status != "scheduled" or not schedule.is_enabled:
            raise ValidationError(f"Schedule {schedule.id} is not available for booking")
        if schedule.departure_time <= now:
            raise ValidationError(f"Schedule {schedule.id} has already departed")

    def _ensure_stops(self, schedule: Schedule, pickup_stop_id: Optional[int], dropoff_stop_id: Optional[int]):
        for label, stop_id in (("Pickup", pickup_stop_id), ("Dropoff", dropoff_stop_id)):
            if stop_id is None:
                continue
            stop = self.db.query(Stop).filter(Stop.id == stop_id).first()
            if not stop:
                raise NotFoundError(f"{label} stop {stop_id} not found")
            if stop.route_id != schedule.route_id:
                raise ValidationError(f"{label} stop {stop_id} is not on the route of schedule {schedule.id}")

    def _record_history(self, booking: Booking, from_status, to_status: BookingStatus, actor: Actor, reason, at: datetime):
        self.db.add(BookingStatusHistory(
            booking_id=booking.id,
            from_status=from_status,
            to_status=to_status.value,
            actor_kind=actor.kind.value,
            actor_id=actor.id,
            reason=reason,
            created_at=at
        ))
