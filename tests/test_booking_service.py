from datetime import timedelta
from decimal import Decimal

import pytest

from bus_booking.bookings.authorization import Actor
from bus_booking.bookings.booking_service import BookingService, PaymentSource
from bus_booking.bookings.schemas import BookingCreateRequest
from bus_booking.exceptions import (
    InvalidStateError, NotFoundError, PermissionDeniedError, SeatUnavailableError,
    StaleConfirmationError, ValidationError
)
from bus_booking.models import Booking, BookingStatusHistory, Seat, Stop


def _seat_statuses(db, ids):
    db.expire_all()
    return [db.get(Seat, seat_id).status for seat_id in ids]


@pytest.fixture
def service(db, now):
    return BookingService(db, clock=lambda: now)


def test_create_booking_reserves_seats_and_prices_them(db, service, make_user, make_schedule, seat_ids, now):
    user = make_user()
    schedule = make_schedule(price=Decimal("100000"))
    ids = seat_ids(schedule, 5, 6)

    booking = service.create_booking(
        BookingCreateRequest(schedule_id=schedule.id, seat_ids=ids), Actor.user(user.id)
    )

    assert booking.status == "pending"
    assert booking.payment_status == "pending"
    assert booking.total_price == Decimal("200000")
    assert booking.booked_at == now
    assert booking.seat_ids == ids
    assert _seat_statuses(db, ids) == ["pending", "pending"]
    assert {db.get(Seat, seat_id).booking_id for seat_id in ids} == {booking.id}


def test_create_booking_uses_per_seat_price_override(db, service, make_user, make_schedule, seat_ids):
    user = make_user()
    schedule = make_schedule(price=Decimal("100000"))
    ids = seat_ids(schedule, 1, 2)
    db.get(Seat, ids[1]).price_override = Decimal("150000")
    db.commit()

    booking = service.create_booking(
        BookingCreateRequest(schedule_id=schedule.id, seat_ids=ids), Actor.user(user.id)
    )

    assert booking.total_price == Decimal("250000")
    assert [bs.price for bs in booking.booking_seats] == [Decimal("100000"), Decimal("150000")]


def test_second_booking_for_held_seat_names_the_conflict(db, service, make_user, make_schedule, seat_ids, book):
    schedule = make_schedule()
    first, second = make_user(), make_user()
    book(first, schedule, seat_ids(schedule, 5, 6))

    with pytest.raises(SeatUnavailableError) as exc_info:
        service.create_booking(
            BookingCreateRequest(schedule_id=schedule.id, seat_ids=seat_ids(schedule, 4, 5)),
            Actor.user(second.id)
        )

    assert exc_info.value.seat_numbers == ["5"]
    assert exc_info.value.seat_ids == seat_ids(schedule, 5)
    assert "5" in exc_info.value.message
    # No partial booking or seat mutation
    assert db.query(Booking).count() == 1
    assert _seat_statuses(db, seat_ids(schedule, 4)) == ["available"]


def test_create_booking_unknown_schedule(service, make_user):
    user = make_user()
    with pytest.raises(NotFoundError):
        service.create_booking(BookingCreateRequest(schedule_id=999, seat_ids=[1]), Actor.user(user.id))


def test_create_booking_unknown_user(service, make_schedule, seat_ids):
    schedule = make_schedule()
    with pytest.raises(NotFoundError):
        service.create_booking(
            BookingCreateRequest(user_id=999, schedule_id=schedule.id, seat_ids=seat_ids(schedule, 1)),
            Actor.system()
        )


@pytest.mark.parametrize("overrides", [
    {"status": "cancelled"},
    {"is_enabled": False},
    {"departs_in": timedelta(hours=-1)},
])
def test_create_booking_rejects_unbookable_schedule(service, make_user, make_schedule, seat_ids, overrides):
    user = make_user()
    schedule = make_schedule(**overrides)

    with pytest.raises(ValidationError):
        service.create_booking(
            BookingCreateRequest(schedule_id=schedule.id, seat_ids=seat_ids(schedule, 1)), Actor.user(user.id)
        )


def test_create_booking_limits_seat_count(service, make_user, make_schedule, seat_ids):
    user = make_user()
    schedule = make_schedule(seat_count=12)

    with pytest.raises(ValidationError):
        service.create_booking(
            BookingCreateRequest(schedule_id=schedule.id, seat_ids=seat_ids(schedule, *range(1, 12))),
            Actor.user(user.id)
        )


def test_create_booking_rejects_stop_from_another_route(db, service, make_user, make_schedule, seat_ids):
    user = make_user()
    schedule = make_schedule()
    other = make_schedule()
    foreign_stop = db.query(Stop).filter(Stop.route_id == other.route_id).first()

    with pytest.raises(ValidationError):
        service.create_booking(
            BookingCreateRequest(
                schedule_id=schedule.id, seat_ids=seat_ids(schedule, 1), pickup_stop_id=foreign_stop.id
            ),
            Actor.user(user.id)
        )


def test_user_cannot_book_for_someone_else(service, make_user, make_schedule, seat_ids):
    user, other = make_user(), make_user()
    schedule = make_schedule()

    with pytest.raises(PermissionDeniedError):
        service.create_booking(
            BookingCreateRequest(user_id=other.id, schedule_id=schedule.id, seat_ids=seat_ids(schedule, 1)),
            Actor.user(user.id)
        )


def test_admin_booking_without_user_id_is_rejected(db, service, make_user, make_admin, make_schedule, seat_ids):
    customer = make_user()
    admin = make_admin()
    assert customer.id == admin.id
    schedule = make_schedule()
    ids = seat_ids(schedule, 1)

    with pytest.raises(ValidationError):
        service.create_booking(BookingCreateRequest(schedule_id=schedule.id, seat_ids=ids), Actor.admin(admin.id))

    assert db.query(Booking).count() == 0
    assert _seat_statuses(db, ids) == ["available"]


def test_admin_books_for_named_customer(service, make_user, make_admin, make_schedule, seat_ids):
    customer = make_user()
    admin = make_admin()
    schedule = make_schedule()

    booking = service.create_booking(
        BookingCreateRequest(user_id=customer.id, schedule_id=schedule.id, seat_ids=seat_ids(schedule, 1)),
        Actor.admin(admin.id)
    )

    assert booking.user_id == customer.id
    assert booking.history[0].actor_kind == "admin"


def test_system_booking_without_user_id_is_rejected(service, make_schedule, seat_ids):
    schedule = make_schedule()

    with pytest.raises(ValidationError):
        service.create_booking(
            BookingCreateRequest(schedule_id=schedule.id, seat_ids=seat_ids(schedule, 1)), Actor.system()
        )


def test_cancel_pending_booking_releases_seats(db, service, make_user, make_schedule, seat_ids, book):
    user = make_user()
    schedule = make_schedule()
    ids = seat_ids(schedule, 5, 6)
    booking = book(user, schedule, ids)

    cancelled = service.cancel_booking(booking.id, Actor.user(user.id), reason="changed plans")

    assert cancelled.status == "cancelled"
    assert cancelled.payment_status == "cancelled"
    assert cancelled.cancel_reason == "changed plans"
    assert _seat_statuses(db, ids) == ["available", "available"]


def test_cancel_cancelled_booking_fails_without_touching_seats(db, service, make_user, make_schedule, seat_ids, book):
    user = make_user()
    schedule = make_schedule()
    ids = seat_ids(schedule, 5, 6)
    booking = book(user, schedule, ids)
    service.cancel_booking(booking.id, Actor.user(user.id), reason="first")

    # Somebody else grabs seat 5 in between
    newcomer = book(make_user(), schedule, ids[:1])

    with pytest.raises(InvalidStateError) as exc_info:
        service.cancel_booking(booking.id, Actor.user(user.id), reason="second")

    assert exc_info.value.current_status == "cancelled"
    assert "cancelled" in exc_info.value.message
    assert _seat_statuses(db, ids) == ["pending", "available"]
    assert db.get(Seat, ids[0]).booking_id == newcomer.id


def test_user_cannot_cancel_another_users_booking(service, make_user, make_schedule, seat_ids, book):
    owner, other = make_user(), make_user()
    schedule = make_schedule()
    booking = book(owner, schedule, seat_ids(schedule, 1))

    with pytest.raises(PermissionDeniedError):
        service.cancel_booking(booking.id, Actor.user(other.id), reason="nope")


def test_user_cannot_cancel_paid_booking(service, make_user, make_schedule, seat_ids, book):
    user = make_user()
    schedule = make_schedule()
    booking = book(user, schedule, seat_ids(schedule, 1))
    service.mark_paid(booking.id, PaymentSource(kind="webhook", reference="ref-1"))

    with pytest.raises(InvalidStateError) as exc_info:
        service.cancel_booking(booking.id, Actor.user(user.id), reason="too late")

    assert exc_info.value.current_status == "paid"


def test_admin_cancel_of_paid_booking_requires_reason(db, service, make_user, make_schedule, seat_ids, book):
    user = make_user()
    schedule = make_schedule()
    ids = seat_ids(schedule, 3)
    booking = book(user, schedule, ids)
    service.mark_paid(booking.id, PaymentSource(kind="webhook", reference="ref-1"))
    admin = Actor.admin(1, "admin")

    with pytest.raises(ValidationError):
        service.cancel_booking(booking.id, admin, reason=" ")

    cancelled = service.cancel_booking(booking.id, admin, reason="bus broke down")

    assert cancelled.status == "cancelled"
    assert cancelled.payment_status == "refunded"
    assert _seat_statuses(db, ids) == ["available"]


def test_mark_paid_confirms_seats(db, service, make_user, make_schedule, seat_ids, book, now):
    user = make_user()
    schedule = make_schedule()
    ids = seat_ids(schedule, 5, 6)
    booking = book(user, schedule, ids)

    paid = service.mark_paid(booking.id, PaymentSource(kind="webhook", reference="123456"))

    assert paid.status == "paid"
    assert paid.payment_status == "paid"
    assert paid.payment_reference == "123456"
    assert paid.payment_completed_at == now
    assert _seat_statuses(db, ids) == ["booked", "booked"]


def test_mark_paid_is_idempotent_for_same_reference(db, service, make_user, make_schedule, seat_ids, book):
    user = make_user()
    schedule = make_schedule()
    ids = seat_ids(schedule, 5, 6)
    booking = book(user, schedule, ids)
    source = PaymentSource(kind="webhook", reference="123456")

    service.mark_paid(booking.id, source)
    again = service.mark_paid(booking.id, source)

    assert again.status == "paid"
    assert _seat_statuses(db, ids) == ["booked", "booked"]
    paid_rows = db.query(BookingStatusHistory).filter(
        BookingStatusHistory.booking_id == booking.id, BookingStatusHistory.to_status == "paid"
    ).count()
    assert paid_rows == 1


def test_mark_paid_with_other_reference_is_stale(service, make_user, make_schedule, seat_ids, book):
    user = make_user()
    schedule = make_schedule()
    booking = book(user, schedule, seat_ids(schedule, 1))
    service.mark_paid(booking.id, PaymentSource(kind="webhook", reference="first"))

    with pytest.raises(StaleConfirmationError):
        service.mark_paid(booking.id, PaymentSource(kind="webhook", reference="second"))


def test_mark_paid_never_reactivates_cancelled_booking(db, service, make_user, make_schedule, seat_ids, book):
    user = make_user()
    schedule = make_schedule()
    ids = seat_ids(schedule, 1)
    booking = book(user, schedule, ids)
    service.cancel_booking(booking.id, Actor.system(), reason="expired")

    with pytest.raises(StaleConfirmationError) as exc_info:
        service.mark_paid(booking.id, PaymentSource(kind="webhook", reference="late"))

    assert exc_info.value.current_status == "cancelled"
    db.expire_all()
    assert db.get(Booking, booking.id).status == "cancelled"
    assert _seat_statuses(db, ids) == ["available"]


def test_complete_booking_only_from_paid(service, make_user, make_schedule, seat_ids, book):
    user = make_user()
    schedule = make_schedule()
    booking = book(user, schedule, seat_ids(schedule, 1))

    with pytest.raises(InvalidStateError):
        service.complete_booking(booking.id, Actor.system())

    service.mark_paid(booking.id, PaymentSource(kind="admin", reference="admin:1"))
    completed = service.complete_booking(booking.id, Actor.system())

    assert completed.status == "completed"


def test_every_transition_is_recorded(db, service, make_user, make_schedule, seat_ids, book):
    user = make_user()
    schedule = make_schedule()
    booking = book(user, schedule, seat_ids(schedule, 1))
    service.mark_paid(booking.id, PaymentSource(kind="webhook", reference="r"))
    service.complete_booking(booking.id, Actor.system())

    db.expire_all()
    history = db.get(Booking, booking.id).history

    assert [(h.from_status, h.to_status, h.actor_kind) for h in history] == [
        (None, "pending", "user"),
        ("pending", "paid", "system"),
        ("paid", "completed", "system"),
    ]


def test_get_user_bookings_paginates_newest_first(service, make_user, make_schedule, seat_ids, book, now):
    user = make_user()
    schedule = make_schedule()
    older = book(user, schedule, seat_ids(schedule, 1), at=now - timedelta(minutes=2))
    newer = book(user, schedule, seat_ids(schedule, 2), at=now - timedelta(minutes=1))

    first_page, total = service.get_user_bookings(user.id, page=1, limit=1)
    second_page, _ = service.get_user_bookings(user.id, page=2, limit=1)

    assert total == 2
    assert [b.id for b in first_page] == [newer.id]
    assert [b.id for b in second_page] == [older.id]


def test_to_detail_includes_expiry_for_pending(service, make_user, make_schedule, seat_ids, book, now):
    user = make_user()
    schedule = make_schedule()
    booking = book(user, schedule, seat_ids(schedule, 5, 6))

    detail = service.to_detail(booking)

    assert detail.expires_at == now + timedelta(minutes=5)
    assert [seat.seat_number for seat in detail.seats] == ["5", "6"]
    assert detail.departure_time == schedule.departure_time
