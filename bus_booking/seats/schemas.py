from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from enum import Enum

class SeatStatus(str, Enum):
    """Seat status enumeration"""
    AVAILABLE = "available"
    PENDING = "pending"
    BOOKED = "booked"
    BLOCKED = "blocked"

class SeatFloor(str, Enum):
    UPPER = "upper"
    LOWER = "lower"
    MAIN = "main"

class SeatInfo(BaseModel):
    """Seat as shown on the seat map"""
    id: int
    schedule_id: int
    seat_number: str
    floor: Optional[str] = None
    status: SeatStatus
    is_enabled: bool
    price: Decimal
    pending_since: Optional[datetime] = None

class SeatMap(BaseModel):
    schedule_id: int
    total_seats: int
    available_seats: int
    seats: List[SeatInfo]

class SeatToggleRequest(BaseModel):
    """Admin request to enable/disable seats of a schedule"""
    seat_ids: List[int] = Field(..., min_length=1, alias="seatIds")
    enabled: bool
    admin_note: Optional[str] = Field(None, alias="adminNote")

    class Config:
        populate_by_name = True

class SeatToggleResult(BaseModel):
    schedule_id: int = Field(..., alias="scheduleId")
    updated_seat_ids: List[int] = Field(..., alias="updatedSeatIds")
    enabled: bool

    class Config:
        populate_by_name = True
