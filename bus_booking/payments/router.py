from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import RedirectResponse
from loguru import logger
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from bus_booking.database import get_db
from bus_booking.auth.dependencies import get_current_principal
from bus_booking.auth.schemas import Principal
from bus_booking.bookings.authorization import Actor
from bus_booking.bookings.schemas import BookingStatus
from bus_booking.config import settings
from bus_booking.exceptions import DomainError, NotFoundError, StaleConfirmationError, ValidationError
from bus_booking.payments.reconciliation import PaymentReconciliationService
from bus_booking.payments.schemas import PaymentCreateRequest, PaymentRequestResponse, WebhookAck

router = APIRouter()

def _frontend_redirect(path: str, **params) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    url = f"{settings.FRONTEND_URL}/payment/{path}"
    return RedirectResponse(url=f"{url}?{query}" if query else url, status_code=302)

@router.post("/create", response_model=PaymentRequestResponse)
def create_payment(
    request: PaymentCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Build the signed checkout request for a pending booking"""
    service = PaymentReconciliationService(db)
    return service.create_payment_request(request.booking_id, Actor.from_principal(principal))

@router.post("/webhook", response_model=WebhookAck)
def payment_webhook(payload: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    """Gateway notification; always acknowledged unless the signature is bad"""
    service = PaymentReconciliationService(db)

    try:
        booking = service.handle_webhook(payload)
    except (NotFoundError, StaleConfirmationError, ValidationError) as e:
        # Not retried; the gateway only needs the acknowledgement
        return WebhookAck(success=False, message=e.message)

    return WebhookAck(success=True, message="Ok", booking_id=booking.id, status=booking.status)

@router.get("/callback/success")
def payment_success_callback(
    order_code: str = Query(..., alias="orderCode"),
    payment_request_id: Optional[str] = Query(None, alias="paymentRequestId"),
    payment_status: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db)
):
    """Browser return from the gateway after checkout"""
    service = PaymentReconciliationService(db)

    try:
        booking = service.handle_return_callback(order_code, payment_status, payment_request_id)
    except DomainError as e:
        logger.warning(f"Payment success callback failed for orderCode={order_code}: {e.message}")
        return _frontend_redirect("error", message=e.message)

    if booking.status == BookingStatus.CANCELLED.value:
        return _frontend_redirect("cancel", bookingId=booking.id)
    return _frontend_redirect("success", bookingId=booking.id, status=booking.status)

@router.get("/callback/cancel")
def payment_cancel_callback(
    order_code: str = Query(..., alias="orderCode"),
    db: Session = Depends(get_db)
):
    """Browser return from the gateway after the buyer gave up"""
    service = PaymentReconciliationService(db)

    try:
        booking = service.handle_return_callback(order_code, "CANCELLED")
    except DomainError as e:
        logger.warning(f"Payment cancel callback failed for orderCode={order_code}: {e.message}")
        return _frontend_redirect("error", message=e.message)

    return _frontend_redirect("cancel", bookingId=booking.id)
