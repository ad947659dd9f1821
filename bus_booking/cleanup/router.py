from fastapi import APIRouter, Depends
from loguru import logger
from sqlalchemy.orm import Session

from bus_booking.database import get_db
from bus_booking.auth.dependencies import require_admin
from bus_booking.auth.schemas import Principal
from bus_booking.cleanup.schemas import ExpiredBookingList, PendingStats, SweepResult
from bus_booking.cleanup.sweeper import ExpirySweeper

router = APIRouter()

@router.post("/pending-bookings", response_model=SweepResult)
def cleanup_pending_bookings(
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Run the expiry sweep now"""
    logger.info(f"Manual expiry sweep requested by admin {admin.id}")
    return ExpirySweeper(db).sweep()

@router.get("/pending-stats", response_model=PendingStats)
def get_pending_stats(
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Pending booking counts for the dashboard"""
    return ExpirySweeper(db).get_pending_stats()

@router.get("/expired-bookings", response_model=ExpiredBookingList)
def get_expired_bookings(
    admin: Principal = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Pending bookings past the timeout that the next sweep will cancel"""
    expired = ExpirySweeper(db).get_expired_pending_bookings()
    return ExpiredBookingList(expired_bookings=expired, total=len(expired))
