from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime

from bus_booking.database import get_db
from bus_booking.auth.dependencies import require_admin_or_manager
from bus_booking.auth.schemas import Principal
from bus_booking.admin.schemas import AdminCancelRequest, BookingStats, BookingStatusUpdateRequest
from bus_booking.admin.service import AdminBookingService
from bus_booking.bookings.authorization import Actor
from bus_booking.bookings.booking_service import BookingService
from bus_booking.bookings.schemas import BookingDetail, BookingPage, BookingStatus
from bus_booking.seats.schemas import SeatToggleRequest, SeatToggleResult

router = APIRouter()

# Booking Management Endpoints
@router.get("/bookings", response_model=BookingPage)
def list_bookings(
    status: Optional[BookingStatus] = Query(None),
    user_id: Optional[int] = Query(None),
    schedule_id: Optional[int] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    admin: Principal = Depends(require_admin_or_manager),
    db: Session = Depends(get_db)
):
    """List bookings with optional filters"""
    service = AdminBookingService(db)
    bookings, total = service.list_bookings(status, user_id, schedule_id, page, limit)
    return BookingPage(
        bookings=[service.booking_service.to_detail(b) for b in bookings],
        total=total,
        page=page,
        limit=limit,
        total_pages=BookingService.total_pages(total, limit)
    )

@router.get("/bookings/stats", response_model=BookingStats)
def get_booking_stats(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    admin: Principal = Depends(require_admin_or_manager),
    db: Session = Depends(get_db)
):
    """Booking counts by status and paid revenue, optionally within a booked_at window"""
    return AdminBookingService(db).get_booking_stats(start_date, end_date)

@router.get("/bookings/{booking_id}", response_model=BookingDetail)
def get_booking(
    booking_id: int,
    admin: Principal = Depends(require_admin_or_manager),
    db: Session = Depends(get_db)
):
    service = BookingService(db)
    return service.to_detail(service.get_booking(booking_id))

@router.patch("/bookings/{booking_id}/status", response_model=BookingDetail)
def update_booking_status(
    booking_id: int,
    request: BookingStatusUpdateRequest,
    admin: Principal = Depends(require_admin_or_manager),
    db: Session = Depends(get_db)
):
    """Force a status transition (cash payment, correction, completion)"""
    service = AdminBookingService(db)
    booking = service.update_status(booking_id, request.status, request.reason, Actor.from_principal(admin))
    return service.booking_service.to_detail(booking)

@router.post("/bookings/{booking_id}/cancel", response_model=BookingDetail)
def force_cancel_booking(
    booking_id: int,
    request: AdminCancelRequest,
    admin: Principal = Depends(require_admin_or_manager),
    db: Session = Depends(get_db)
):
    """Cancel a pending or paid booking; a reason is required"""
    service = AdminBookingService(db)
    booking = service.force_cancel(booking_id, request.reason, Actor.from_principal(admin))
    return service.booking_service.to_detail(booking)

# Seat Management Endpoints
@router.patch("/schedules/{schedule_id}/seats", response_model=SeatToggleResult)
def toggle_schedule_seats(
    schedule_id: int,
    request: SeatToggleRequest,
    admin: Principal = Depends(require_admin_or_manager),
    db: Session = Depends(get_db)
):
    """Enable or disable seats of a schedule"""
    return AdminBookingService(db).toggle_seats(schedule_id, request, Actor.from_principal(admin))
