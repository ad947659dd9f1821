from pydantic import BaseModel, Field, validator
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

class BookingStatus(str, Enum):
    """Booking status enumeration"""
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

class PaymentStatus(str, Enum):
    """Payment status enumeration"""
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    REFUNDED = "refunded"

class ActorKind(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"

# Booking Request Models
class BookingCreateRequest(BaseModel):
    """Request to reserve seats on a schedule; camelCase keys are accepted too"""
    user_id: Optional[int] = Field(None, alias="userId")  # defaults to the authenticated user
    schedule_id: int = Field(..., alias="scheduleId")
    seat_ids: List[int] = Field(..., alias="seatIds")
    pickup_stop_id: Optional[int] = Field(None, alias="pickupStopId")
    dropoff_stop_id: Optional[int] = Field(None, alias="dropoffStopId")
    payment_method: str = Field("cash", alias="paymentMethod")

    class Config:
        populate_by_name = True

    @validator('seat_ids')
    def validate_seat_ids(cls, v):
        if not v:
            raise ValueError('At least one seat is required')
        if len(set(v)) != len(v):
            raise ValueError('Duplicate seat ids are not allowed')
        return v

class BookingCancellationRequest(BaseModel):
    """Request to cancel a booking"""
    reason: Optional[str] = None

# Booking Response Models
class BookedSeat(BaseModel):
    seat_id: int
    seat_number: str
    floor: Optional[str] = None
    price: Decimal

class BookingDetail(BaseModel):
    """Booking with its seat set"""
    id: int
    user_id: int
    schedule_id: int
    status: BookingStatus
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[str] = None
    total_price: Decimal
    booked_at: datetime
    expires_at: Optional[datetime] = None
    pickup_stop_id: Optional[int] = None
    dropoff_stop_id: Optional[int] = None
    order_code: Optional[str] = None
    payment_request_id: Optional[str] = None
    payment_completed_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    departure_time: Optional[datetime] = None
    seats: List[BookedSeat] = []

class BookingHistoryEntry(BaseModel):
    from_status: Optional[str] = None
    to_status: str
    actor_kind: ActorKind
    actor_id: Optional[int] = None
    reason: Optional[str] = None
    created_at: datetime
    
    class Config:
        from_attributes = True

class BookingPage(BaseModel):
    bookings: List[BookingDetail]
    total: int
    page: int
    limit: int
    total_pages: int
