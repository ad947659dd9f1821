from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from bus_booking.config import settings
from bus_booking.database import Base, engine
from bus_booking.exception_handlers import register_exception_handlers
from bus_booking.logger_config import setup_logging
from bus_booking.auth import router as auth_router
from bus_booking.bookings import router as bookings_router
from bus_booking.seats import router as seats_router
from bus_booking.payments import router as payments_router
from bus_booking.cleanup import router as cleanup_router, ExpirySweepScheduler
from bus_booking.admin import router as admin_router

sweep_scheduler = ExpirySweepScheduler()

@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.PROJECT_NAME} starting ({settings.ENVIRONMENT})")

    if settings.ENABLE_EXPIRY_SWEEPER:
        sweep_scheduler.start()
    try:
        yield
    finally:
        if sweep_scheduler.running:
            sweep_scheduler.stop()
        logger.info(f"{settings.PROJECT_NAME} stopped")

# Create FastAPI app
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Bus Ticket Booking System API",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(
    auth_router,
    prefix=f"{settings.API_V1_STR}/auth",
    tags=["Authentication"]
)

app.include_router(
    bookings_router,
    prefix=f"{settings.API_V1_STR}/bookings",
    tags=["Bookings"]
)

app.include_router(
    seats_router,
    prefix=f"{settings.API_V1_STR}/schedules",
    tags=["Seats"]
)

app.include_router(
    payments_router,
    prefix=f"{settings.API_V1_STR}/payments",
    tags=["Payments"]
)

app.include_router(
    cleanup_router,
    prefix=f"{settings.API_V1_STR}/admin/cleanup",
    tags=["Admin Cleanup"]
)

app.include_router(
    admin_router,
    prefix=f"{settings.API_V1_STR}/admin",
    tags=["Admin"]
)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": "Bus Ticket Booking System API",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
