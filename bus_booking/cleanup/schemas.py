from pydantic import BaseModel, Field
from typing import List
from datetime import datetime
from decimal import Decimal

class SweepResult(BaseModel):
    """Outcome of one expiry sweep"""
    processed: int
    failed: int = 0
    skipped: int = 0
    cancelled_booking_ids: List[int] = Field([], alias="cancelledBookingIds")
    timestamp: datetime

    class Config:
        populate_by_name = True

class PendingStats(BaseModel):
    total_pending: int = Field(..., alias="totalPending")
    expiring_soon: int = Field(..., alias="expiringSoon")
    expired: int
    timeout_minutes: int = Field(..., alias="timeoutMinutes")

    class Config:
        populate_by_name = True

class ExpiredBooking(BaseModel):
    id: int
    user_id: int = Field(..., alias="userId")
    user_name: str = Field(..., alias="userName")
    user_email: str = Field(..., alias="userEmail")
    schedule_id: int = Field(..., alias="scheduleId")
    total_price: Decimal = Field(..., alias="totalPrice")
    booked_at: datetime = Field(..., alias="bookedAt")
    minutes_since_booking: int = Field(..., alias="minutesSinceBooking")

    class Config:
        populate_by_name = True

class ExpiredBookingList(BaseModel):
    expired_bookings: List[ExpiredBooking] = Field(..., alias="expiredBookings")
    total: int

    class Config:
        populate_by_name = True
