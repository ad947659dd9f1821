import pytest

from bus_booking.bookings.authorization import Actor
from bus_booking.bookings.booking_service import BookingService
from bus_booking.bookings.schemas import PaymentStatus
from bus_booking.exceptions import (
    InvalidSignatureError, InvalidStateError, NotFoundError, PermissionDeniedError,
    StaleConfirmationError, ValidationError
)
from bus_booking.models import Booking, BookingStatusHistory, Seat
from bus_booking.payments.gateway import (
    build_signature_payload, create_signature, generate_order_code, map_gateway_status, verify_signature
)
from bus_booking.payments.reconciliation import PaymentReconciliationService


def _webhook(order_code, code="00", checksum_key=None):
    data = {
        "orderCode": int(order_code),
        "amount": 200000,
        "description": "Bus HN den HP",
        "code": code,
        "desc": "success" if code == "00" else "failed",
        "paymentLinkId": "plink-123",
    }
    return {
        "code": code,
        "desc": "success",
        "success": code == "00",
        "data": data,
        "signature": create_signature(data, checksum_key),
    }


def _state(db, booking_id):
    db.expire_all()
    booking = db.get(Booking, booking_id)
    return booking.status, [db.get(Seat, seat_id).status for seat_id in booking.seat_ids]


@pytest.fixture
def service(db, now):
    return PaymentReconciliationService(db, clock=lambda: now)


@pytest.fixture
def pending_booking(service, make_user, make_schedule, seat_ids, book):
    """Pending booking for seats 5 and 6 with a payment request issued"""
    user = make_user()
    schedule = make_schedule()
    booking = book(user, schedule, seat_ids(schedule, 5, 6))
    response = service.create_payment_request(booking.id, Actor.user(user.id))
    return booking.id, response.order_code


# ============================================================================
# Wire format
# ============================================================================

def test_signature_payload_sorts_keys_and_blanks_none():
    assert build_signature_payload({"b": 2, "a": None, "c": "x"}) == "a=&b=2&c=x"


def test_verify_signature_detects_tampering():
    data = {"orderCode": 123, "amount": 1000, "code": "00"}
    signature = create_signature(data)

    assert verify_signature(data, signature)
    assert not verify_signature({**data, "amount": 1}, signature)
    assert not verify_signature(data, create_signature(data, "another-key"))
    assert not verify_signature(data, None)


@pytest.mark.parametrize("value, expected", [
    ("PAID", PaymentStatus.PAID),
    ("00", PaymentStatus.PAID),
    ("cancelled", PaymentStatus.CANCELLED),
    ("01", PaymentStatus.FAILED),
    ("EXPIRED", PaymentStatus.EXPIRED),
    ("02", PaymentStatus.EXPIRED),
    ("PENDING", PaymentStatus.PENDING),
])
def test_map_gateway_status(value, expected):
    assert map_gateway_status(value) == expected


def test_map_gateway_status_rejects_unknown():
    with pytest.raises(ValidationError):
        map_gateway_status("REFUNDED?")


def test_order_code_keeps_booking_id_and_uses_given_clock(now):
    code = generate_order_code(42, now)

    assert code.isdigit()
    assert code.startswith("42")
    assert len(code) == 2 + 6
    assert generate_order_code(42, now) == code


def test_order_codes_of_different_bookings_never_collide(now):
    codes = {generate_order_code(booking_id, now) for booking_id in range(1, 200)}
    assert len(codes) == 199
    assert generate_order_code(1, now) != generate_order_code(11, now)


def test_payment_request_order_code_follows_service_clock(service, make_user, make_schedule, seat_ids, book, now):
    user = make_user()
    schedule = make_schedule()
    booking = book(user, schedule, seat_ids(schedule, 1))

    response = service.create_payment_request(booking.id, Actor.user(user.id))

    assert response.order_code == generate_order_code(booking.id, now)


# ============================================================================
# Payment request
# ============================================================================

def test_create_payment_request_stores_order_code(db, service, pending_booking):
    booking_id, order_code = pending_booking

    db.expire_all()
    assert db.get(Booking, booking_id).order_code == order_code


def test_create_payment_request_builds_signed_checkout(service, make_user, make_schedule, seat_ids, book):
    user = make_user()
    schedule = make_schedule()
    booking = book(user, schedule, seat_ids(schedule, 1, 2))

    response = service.create_payment_request(booking.id, Actor.user(user.id))
    payload = response.checkout_payload
    signed = {k: payload[k] for k in ("amount", "cancelUrl", "description", "orderCode", "returnUrl")}

    assert payload["amount"] == 200000
    assert payload["returnUrl"].endswith(f"/api/v1/payments/callback/success?orderCode={response.order_code}")
    assert payload["cancelUrl"].startswith("http://backend.test")
    assert len(payload["description"]) <= 25
    assert verify_signature(signed, payload["signature"])


def test_create_payment_request_requires_owner_and_pending(service, make_user, make_schedule, seat_ids, book):
    owner, other = make_user(), make_user()
    schedule = make_schedule()
    booking = book(owner, schedule, seat_ids(schedule, 1))

    with pytest.raises(PermissionDeniedError):
        service.create_payment_request(booking.id, Actor.user(other.id))

    BookingService(service.db).cancel_booking(booking.id, Actor.user(owner.id), reason="changed plans")
    with pytest.raises(InvalidStateError):
        service.create_payment_request(booking.id, Actor.user(owner.id))


# ============================================================================
# Webhook
# ============================================================================

def test_paid_webhook_confirms_booking(db, service, pending_booking):
    booking_id, order_code = pending_booking

    service.handle_webhook(_webhook(order_code, "00"))

    assert _state(db, booking_id) == ("paid", ["booked", "booked"])
    booking = db.get(Booking, booking_id)
    assert booking.payment_reference == order_code
    assert booking.payment_request_id == "plink-123"


def test_duplicate_paid_webhook_leaves_state_unchanged(db, service, pending_booking):
    booking_id, order_code = pending_booking
    payload = _webhook(order_code, "00")

    service.handle_webhook(payload)
    service.handle_webhook(payload)

    assert _state(db, booking_id) == ("paid", ["booked", "booked"])
    assert db.query(BookingStatusHistory).filter(
        BookingStatusHistory.booking_id == booking_id, BookingStatusHistory.to_status == "paid"
    ).count() == 1


def test_webhook_with_bad_signature_is_rejected(db, service, pending_booking):
    booking_id, order_code = pending_booking

    with pytest.raises(InvalidSignatureError):
        service.handle_webhook(_webhook(order_code, "00", checksum_key="forged-key"))
    with pytest.raises(InvalidSignatureError):
        service.handle_webhook({"code": "00", "data": {"orderCode": int(order_code), "code": "00"}})

    assert _state(db, booking_id) == ("pending", ["pending", "pending"])


def test_webhook_for_unknown_order_code(service):
    with pytest.raises(NotFoundError):
        service.handle_webhook(_webhook("999999999", "00"))


def test_failed_webhook_cancels_and_releases(db, service, pending_booking):
    booking_id, order_code = pending_booking

    service.handle_webhook(_webhook(order_code, "01"))

    assert _state(db, booking_id) == ("cancelled", ["available", "available"])
    booking = db.get(Booking, booking_id)
    assert booking.payment_status == "failed"
    assert booking.cancel_reason == "gateway-cancelled"


def test_duplicate_cancel_webhook_is_noop(db, service, pending_booking):
    booking_id, order_code = pending_booking

    service.handle_webhook(_webhook(order_code, "02"))
    service.handle_webhook(_webhook(order_code, "02"))

    assert _state(db, booking_id) == ("cancelled", ["available", "available"])
    assert db.get(Booking, booking_id).payment_status == "expired"


def test_paid_webhook_for_cancelled_booking_is_stale(db, service, pending_booking):
    booking_id, order_code = pending_booking
    BookingService(db).cancel_booking(booking_id, Actor.system(), reason="expired")

    with pytest.raises(StaleConfirmationError):
        service.handle_webhook(_webhook(order_code, "00"))

    assert _state(db, booking_id) == ("cancelled", ["available", "available"])


def test_cancel_webhook_for_paid_booking_is_stale(db, service, pending_booking):
    booking_id, order_code = pending_booking
    service.handle_webhook(_webhook(order_code, "00"))

    with pytest.raises(StaleConfirmationError):
        service.handle_webhook(_webhook(order_code, "02"))

    assert _state(db, booking_id) == ("paid", ["booked", "booked"])


# ============================================================================
# Return callback
# ============================================================================

def test_callback_then_webhook_is_safe(db, service, pending_booking):
    booking_id, order_code = pending_booking

    service.handle_return_callback(order_code, "PAID", "plink-123")
    service.handle_webhook(_webhook(order_code, "00"))

    assert _state(db, booking_id) == ("paid", ["booked", "booked"])


def test_webhook_then_callback_is_safe(db, service, pending_booking):
    booking_id, order_code = pending_booking

    service.handle_webhook(_webhook(order_code, "00"))
    booking = service.handle_return_callback(order_code, "PAID")

    assert booking.status == "paid"
    assert _state(db, booking_id) == ("paid", ["booked", "booked"])


def test_callback_without_status_changes_nothing(db, service, pending_booking):
    booking_id, order_code = pending_booking

    booking = service.handle_return_callback(order_code, None)

    assert booking.id == booking_id
    assert _state(db, booking_id) == ("pending", ["pending", "pending"])


def test_cancel_callback_cancels_pending_booking(db, service, pending_booking):
    booking_id, order_code = pending_booking

    service.handle_return_callback(order_code, "CANCELLED")

    assert _state(db, booking_id) == ("cancelled", ["available", "available"])
    assert db.get(Booking, booking_id).payment_status == "cancelled"
