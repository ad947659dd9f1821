"""Translate payment gateway events into booking transitions.

The webhook is authoritative; the browser return callback is best effort and
may arrive before, after or instead of it. Both paths end in the idempotent
``mark_paid`` / ``cancel_booking`` operations, so either order is safe.
"""

import calendar
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from loguru import logger
from sqlalchemy.orm import Session

from bus_booking.bookings.authorization import Actor
from bus_booking.bookings.booking_service import BookingService, PaymentSource
from bus_booking.bookings.schemas import ActorKind, BookingStatus, PaymentStatus
from bus_booking.config import settings
from bus_booking.exceptions import (
    InvalidSignatureError, InvalidStateError, NotFoundError, PermissionDeniedError, StaleConfirmationError
)
from bus_booking.models import Booking
from bus_booking.payments.gateway import (
    build_checkout_payload, generate_order_code, map_gateway_status, province_code, verify_signature
)
from bus_booking.payments.schemas import PaymentRequestResponse
from bus_booking.utils import utcnow

GATEWAY_CANCEL_REASON = "gateway-cancelled"


class PaymentReconciliationService:
    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.booking_service = BookingService(db, clock)

    def create_payment_request(self, booking_id: int, actor: Actor) -> PaymentRequestResponse:
        """Assign an order code to a pending booking and build the signed checkout request"""
        booking = self.booking_service.get_booking(booking_id)
        if actor.kind == ActorKind.USER and booking.user_id != actor.id:
            raise PermissionDeniedError(f"Booking {booking_id} does not belong to user {actor.id}")
        if booking.status != BookingStatus.PENDING.value:
            raise InvalidStateError(
                f"Booking {booking_id} cannot be paid: status is {booking.status}",
                current_status=booking.status
            )

        now = self.clock()
        order_code = generate_order_code(booking.id, now)

        # The link never outlives the seat hold
        expires_at = min(
            booking.booked_at + timedelta(minutes=settings.PENDING_TIMEOUT_MINUTES),
            now + timedelta(minutes=settings.PAYMENT_LINK_TTL_MINUTES)
        )

        route = booking.schedule.route if booking.schedule else None
        if route:
            description = f"Bus {province_code(route.departure_province)} den {province_code(route.arrival_province)}"
        else:
            description = f"Bus booking {booking.id}"

        amount = int(booking.total_price)
        payload = build_checkout_payload(
            order_code=order_code,
            amount=amount,
            description=description,
            expired_at=calendar.timegm(expires_at.utctimetuple())
        )

        self.booking_service.attach_payment_request(booking.id, order_code)
        logger.info(f"Payment request for booking {booking_id}: orderCode={order_code} amount={amount}")

        return PaymentRequestResponse(
            booking_id=booking.id,
            order_code=order_code,
            amount=amount,
            description=payload["description"],
            expires_at=expires_at,
            checkout_payload=payload
        )

    def handle_webhook(self, payload: Dict[str, Any], signature: Optional[str] = None) -> Booking:
        """Apply a signed gateway notification.

        Raises InvalidSignatureError before anything else is looked at, then
        NotFoundError for an unknown order code and StaleConfirmationError for
        an event that conflicts with the booking's current status.
        """
        signature = signature or payload.get("signature")
        data = payload.get("data")
        if not isinstance(data, dict) or not verify_signature(data, signature):
            logger.warning("Rejected payment webhook: invalid signature")
            raise InvalidSignatureError()

        raw_status = data.get("status") or data.get("code") or payload.get("code")
        outcome = map_gateway_status(raw_status)
        payment_request_id = data.get("paymentRequestId") or data.get("paymentLinkId")

        booking = self._find_booking(data.get("orderCode"), payment_request_id)
        logger.info(f"Payment webhook for booking {booking.id}: {raw_status} -> {outcome.value}")
        return self._apply(booking, outcome, "webhook", payment_request_id)

    def handle_return_callback(
        self,
        order_code,
        status: Optional[str] = None,
        payment_request_id: Optional[str] = None
    ) -> Booking:
        """Apply the status reported by the browser redirect, if any"""
        booking = self._find_booking(order_code, payment_request_id)
        if not status:
            return booking

        outcome = map_gateway_status(status)
        try:
            return self._apply(booking, outcome, "callback", payment_request_id)
        except StaleConfirmationError:
            current = self.booking_service.get_booking(booking.id)
            if outcome == PaymentStatus.PAID and current.status in (BookingStatus.PAID.value, BookingStatus.COMPLETED.value):
                return current
            raise

    def _find_booking(self, order_code, payment_request_id: Optional[str] = None) -> Booking:
        booking = None
        if order_code is not None:
            booking = self.booking_service.get_booking_by_order_code(order_code)
        if booking is None and payment_request_id:
            booking = self.booking_service.get_booking_by_payment_request_id(payment_request_id)
        if booking is None:
            logger.warning(f"No booking for orderCode={order_code} paymentRequestId={payment_request_id}")
            raise NotFoundError(f"No booking found for order code {order_code}")
        return booking

    def _apply(self, booking: Booking, outcome: PaymentStatus, kind: str, payment_request_id: Optional[str]) -> Booking:
        if outcome == PaymentStatus.PENDING:
            return booking

        try:
            if outcome == PaymentStatus.PAID:
                source = PaymentSource(kind=kind, reference=booking.order_code, payment_request_id=payment_request_id)
                return self.booking_service.mark_paid(booking.id, source)
            return self._cancel(booking, outcome, kind)
        except StaleConfirmationError as exc:
            logger.warning(f"Stale {kind} event for booking {booking.id}: {exc.message}")
            raise

    def _cancel(self, booking: Booking, outcome: PaymentStatus, kind: str) -> Booking:
        if booking.status == BookingStatus.CANCELLED.value:
            logger.info(f"Booking {booking.id} already cancelled; ignoring {kind} {outcome.value} event")
            return booking
        if booking.status in (BookingStatus.PAID.value, BookingStatus.COMPLETED.value):
            raise StaleConfirmationError(
                f"Booking {booking.id} is {booking.status}; gateway reported {outcome.value}",
                booking_id=booking.id,
                current_status=booking.status
            )

        try:
            return self.booking_service.cancel_booking(
                booking.id, Actor.system(), reason=GATEWAY_CANCEL_REASON, payment_status=outcome
            )
        except InvalidStateError as exc:
            # Lost a race with another writer
            if exc.current_status == BookingStatus.CANCELLED.value:
                return self.booking_service.get_booking(booking.id)
            raise StaleConfirmationError(
                f"Booking {booking.id} is {exc.current_status}; gateway reported {outcome.value}",
                booking_id=booking.id,
                current_status=exc.current_status
            )
