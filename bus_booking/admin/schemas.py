from pydantic import BaseModel, Field
from typing import Dict, Optional
from datetime import datetime
from decimal import Decimal

from bus_booking.bookings.schemas import BookingStatus

class BookingStatusUpdateRequest(BaseModel):
    """Admin override of a booking's status"""
    status: BookingStatus
    reason: Optional[str] = None

class AdminCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)

class StatsPeriod(BaseModel):
    start_date: datetime = Field(..., alias="startDate")
    end_date: datetime = Field(..., alias="endDate")

    class Config:
        populate_by_name = True

class BookingStats(BaseModel):
    """Booking counts by status and paid revenue, optionally for a booked_at window"""
    total: int
    by_status: Dict[str, int] = Field(..., alias="byStatus")
    paid_revenue: Decimal = Field(..., alias="paidRevenue")
    period: Optional[StatsPeriod] = None

    class Config:
        populate_by_name = True
