"""Authoritative seat state for a schedule.

All writes happen inside ``SeatLedger.transaction(schedule_id)``: an
in-process lock keyed by schedule id is held from the first locked read until
the session commits, and every read that precedes a write is issued as
``SELECT ... FOR UPDATE`` so that separate server processes serialize on the
seat rows as well.
"""

import threading
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy.orm import Session

from bus_booking.exceptions import InvalidStateError, NotFoundError, ValidationError
from bus_booking.models import Schedule, Seat
from bus_booking.seats.schemas import SeatInfo, SeatMap, SeatStatus
from bus_booking.utils import utcnow


class _ScheduleLocks:
    """Re-entrant locks keyed by schedule id"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.RLock] = defaultdict(threading.RLock)

    def get(self, schedule_id: int) -> threading.RLock:
        with self._guard:
            return self._locks[schedule_id]


schedule_locks = _ScheduleLocks()


@dataclass
class ReservationResult:
    success: bool
    seats: List[Seat] = field(default_factory=list)
    conflicting_seat_ids: List[int] = field(default_factory=list)
    conflicting_seat_numbers: List[str] = field(default_factory=list)


class SeatLedger:
    """Check-and-mark operations on the seats of one schedule"""

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def transaction(self, schedule_id: int):
        """Serialize seat writes for ``schedule_id`` and commit on exit."""
        lock = schedule_locks.get(schedule_id)
        with lock:
            try:
                yield self.db
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    def _lock_seats(self, schedule_id: int, seat_ids: Iterable[int]) -> List[Seat]:
        ids = list(seat_ids)
        if not ids:
            raise ValidationError("At least one seat is required")
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate seat ids in request")

        seats = (
            self.db.query(Seat)
            .filter(Seat.schedule_id == schedule_id, Seat.id.in_(ids))
            .order_by(Seat.id)
            .with_for_update()
            .populate_existing()
            .all()
        )

        found = {seat.id for seat in seats}
        missing = [seat_id for seat_id in ids if seat_id not in found]
        if missing:
            raise NotFoundError(
                f"Seats {', '.join(str(s) for s in missing)} not found for schedule {schedule_id}"
            )

        # Keep the caller's ordering
        by_id = {seat.id: seat for seat in seats}
        return [by_id[seat_id] for seat_id in ids]

    def try_reserve(
        self,
        schedule_id: int,
        seat_ids: Iterable[int],
        holder_id: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> ReservationResult:
        """Mark every seat pending, or none of them."""
        seats = self._lock_seats(schedule_id, seat_ids)

        conflicts = [
            seat for seat in seats
            if seat.status != SeatStatus.AVAILABLE.value or not seat.is_enabled
        ]
        if conflicts:
            logger.warning(
                f"Seat conflict on schedule {schedule_id}: "
                f"{', '.join(seat.seat_number for seat in conflicts)}"
            )
            return ReservationResult(
                success=False,
                conflicting_seat_ids=[seat.id for seat in conflicts],
                conflicting_seat_numbers=[seat.seat_number for seat in conflicts]
            )

        pending_since = now or utcnow()
        for seat in seats:
            seat.status = SeatStatus.PENDING.value
            seat.pending_since = pending_since
            seat.booking_id = holder_id

        self.db.flush()
        return ReservationResult(success=True, seats=seats)

    def release(
        self,
        schedule_id: int,
        seat_ids: Iterable[int],
        holder_id: Optional[int] = None
    ) -> List[int]:
        """Return seats to ``available``; returns the ids actually released."""
        seats = self._lock_seats(schedule_id, seat_ids)
        released = []

        for seat in seats:
            if seat.status == SeatStatus.AVAILABLE.value:
                continue
            if holder_id is not None and seat.booking_id not in (None, holder_id):
                logger.warning(
                    f"Seat {seat.id} on schedule {schedule_id} is held by booking "
                    f"{seat.booking_id}, not {holder_id}; leaving it untouched"
                )
                continue
            if seat.status == SeatStatus.BLOCKED.value:
                continue

            seat.status = SeatStatus.AVAILABLE.value if seat.is_enabled else SeatStatus.BLOCKED.value
            seat.pending_since = None
            seat.booking_id = None
            released.append(seat.id)

        self.db.flush()
        return released

    def confirm(self, schedule_id: int, seat_ids: Iterable[int], holder_id: int) -> List[Seat]:
        """Turn the holder's pending seats into booked seats."""
        seats = self._lock_seats(schedule_id, seat_ids)

        invalid = [
            seat for seat in seats
            if seat.status != SeatStatus.PENDING.value or seat.booking_id != holder_id
        ]
        if invalid:
            seat = invalid[0]
            raise InvalidStateError(
                f"Seat {seat.seat_number} is {seat.status} and not pending for booking {holder_id}",
                current_status=seat.status
            )

        for seat in seats:
            seat.status = SeatStatus.BOOKED.value
            seat.pending_since = None

        self.db.flush()
        return seats

    def set_enabled(self, schedule_id: int, seat_ids: Iterable[int], enabled: bool) -> List[Seat]:
        """Admin seat toggle; held or booked seats only flip the flag."""
        seats = self._lock_seats(schedule_id, seat_ids)

        for seat in seats:
            seat.is_enabled = enabled
            if not enabled and seat.status == SeatStatus.AVAILABLE.value:
                seat.status = SeatStatus.BLOCKED.value
            elif enabled and seat.status == SeatStatus.BLOCKED.value:
                seat.status = SeatStatus.AVAILABLE.value

        self.db.flush()
        return seats

    def list_seats(self, schedule_id: int) -> SeatMap:
        schedule = self.db.query(Schedule).filter(Schedule.id == schedule_id).first()
        if not schedule:
            raise NotFoundError(f"Schedule {schedule_id} not found")

        seats = self.db.query(Seat).filter(Seat.schedule_id == schedule_id).order_by(Seat.id).all()
        infos = [
            SeatInfo(
                id=seat.id,
                schedule_id=seat.schedule_id,
                seat_number=seat.seat_number,
                floor=seat.floor,
                status=SeatStatus(seat.status),
                is_enabled=seat.is_enabled,
                price=seat_price(seat, schedule),
                pending_since=seat.pending_since
            )
            for seat in seats
        ]

        return SeatMap(
            schedule_id=schedule_id,
            total_seats=len(infos),
            available_seats=len([s for s in infos if s.status == SeatStatus.AVAILABLE and s.is_enabled]),
            seats=infos
        )


def seat_price(seat: Seat, schedule: Schedule) -> Decimal:
    if seat.price_override is not None:
        return Decimal(seat.price_override)
    return Decimal(schedule.price)
