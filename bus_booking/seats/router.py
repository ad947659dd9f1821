from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bus_booking.database import get_db
from bus_booking.seats.ledger import SeatLedger
from bus_booking.seats.schemas import SeatMap

router = APIRouter()

@router.get("/{schedule_id}/seats", response_model=SeatMap)
def get_schedule_seats(schedule_id: int, db: Session = Depends(get_db)):
    """Seat map of a schedule with live status"""
    return SeatLedger(db).list_seats(schedule_id)
