from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from bus_booking.database import get_db
from bus_booking.auth.dependencies import get_current_principal
from bus_booking.auth.schemas import Principal
from bus_booking.bookings.authorization import Actor
from bus_booking.bookings.booking_service import BookingService
from bus_booking.bookings.schemas import (
    BookingCreateRequest, BookingCancellationRequest, BookingDetail, BookingHistoryEntry, BookingPage
)
from bus_booking.exceptions import PermissionDeniedError

router = APIRouter()

def _ensure_can_view(principal: Principal, user_id: int):
    if not principal.is_admin and principal.id != user_id:
        raise PermissionDeniedError("Not allowed to view bookings of another user")

@router.post("", response_model=BookingDetail, status_code=status.HTTP_201_CREATED)
def create_booking(
    request: BookingCreateRequest,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Reserve seats and create a pending booking"""
    booking_service = BookingService(db)
    booking = booking_service.create_booking(request, Actor.from_principal(principal))
    return booking_service.to_detail(booking)

@router.get("/user/{user_id}", response_model=BookingPage)
def get_user_bookings(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """List a user's bookings, newest first"""
    _ensure_can_view(principal, user_id)

    booking_service = BookingService(db)
    bookings, total = booking_service.get_user_bookings(user_id, page=page, limit=limit)
    return BookingPage(
        bookings=[booking_service.to_detail(b) for b in bookings],
        total=total,
        page=page,
        limit=limit,
        total_pages=BookingService.total_pages(total, limit)
    )

@router.get("/{booking_id}", response_model=BookingDetail)
def get_booking(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Get booking details"""
    booking_service = BookingService(db)
    booking = booking_service.get_booking(booking_id)
    _ensure_can_view(principal, booking.user_id)
    return booking_service.to_detail(booking)

@router.get("/{booking_id}/history", response_model=List[BookingHistoryEntry])
def get_booking_history(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Status transitions recorded for a booking"""
    booking = BookingService(db).get_booking(booking_id)
    _ensure_can_view(principal, booking.user_id)
    return booking.history

@router.put("/{booking_id}/cancel", response_model=BookingDetail)
def cancel_booking(
    booking_id: int,
    request: Optional[BookingCancellationRequest] = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db)
):
    """Cancel a booking and release its seats"""
    booking_service = BookingService(db)
    reason = request.reason if request else None
    if not reason and not principal.is_admin:
        reason = "cancelled by user"
    booking = booking_service.cancel_booking(booking_id, Actor.from_principal(principal), reason=reason)
    return booking_service.to_detail(booking)
