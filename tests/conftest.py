"""
Pytest configuration.

Environment variables are set before any application import so settings,
the engine and the app pick up the test configuration.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENABLE_EXPIRY_SWEEPER"] = "false"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PAYMENT_CHECKSUM_KEY"] = "test-checksum-key"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["BACKEND_URL"] = "http://backend.test"

from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bus_booking.auth.utils import create_access_token, get_password_hash
from bus_booking.bookings.authorization import Actor
from bus_booking.bookings.booking_service import BookingService
from bus_booking.bookings.schemas import BookingCreateRequest
from bus_booking.database import Base, get_db
from bus_booking.main import app
from bus_booking.models import AdminUser, Bus, Route, Schedule, Seat, Stop, User
from bus_booking.utils import utcnow

TEST_PASSWORD = "secret123"
TEST_PASSWORD_HASH = get_password_hash(TEST_PASSWORD)


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


# ============================================================================
# Clock
# ============================================================================

@pytest.fixture
def now():
    return utcnow().replace(microsecond=0)


# ============================================================================
# Factories
# ============================================================================

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make_user(full_name: str = None, email: str = None) -> User:
        counter["n"] += 1
        user = User(
            full_name=full_name or f"Customer {counter['n']}",
            email=email or f"customer{counter['n']}@example.com",
            phone_number=f"090000000{counter['n']}",
            password=TEST_PASSWORD_HASH,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_admin(db):
    def _make_admin(role: str = "admin", username: str = None, is_active: bool = True) -> AdminUser:
        username = username or role
        admin = AdminUser(
            username=username,
            email=f"{username}@example.com",
            full_name=f"{role.title()} User",
            role=role,
            is_active=is_active,
            password_hash=TEST_PASSWORD_HASH,
        )
        db.add(admin)
        db.commit()
        db.refresh(admin)
        return admin

    return _make_admin


@pytest.fixture
def make_schedule(db, now):
    def _make_schedule(
        price: Decimal = Decimal("100000"),
        seat_count: int = 10,
        departs_in: timedelta = timedelta(days=1),
        status: str = "scheduled",
        is_enabled: bool = True,
    ) -> Schedule:
        route = Route(departure_province="Ha Noi", arrival_province="Hai Phong")
        db.add(route)
        db.flush()
        db.add_all([
            Stop(route_id=route.id, name="My Dinh", stop_type="pickup", stop_order=1),
            Stop(route_id=route.id, name="Niem Nghia", stop_type="dropoff", stop_order=2),
        ])

        bus = Bus(license_plate=f"29B-{route.id:05d}", bus_type="Limousine", seat_count=seat_count)
        db.add(bus)
        db.flush()

        schedule = Schedule(
            route_id=route.id,
            bus_id=bus.id,
            departure_time=now + departs_in,
            price=price,
            status=status,
            is_enabled=is_enabled,
        )
        db.add(schedule)
        db.flush()

        db.add_all([
            Seat(schedule_id=schedule.id, seat_number=str(number), floor="main")
            for number in range(1, seat_count + 1)
        ])
        db.commit()
        db.refresh(schedule)
        return schedule

    return _make_schedule


@pytest.fixture
def seat_ids(db):
    """Seat ids of a schedule keyed by seat number"""
    def _seat_ids(schedule: Schedule, *numbers: str):
        seats = db.query(Seat).filter(Seat.schedule_id == schedule.id).all()
        by_number = {seat.seat_number: seat.id for seat in seats}
        return [by_number[str(number)] for number in numbers]

    return _seat_ids


@pytest.fixture
def book(db, now):
    """Create a booking through the lifecycle manager at time ``at``"""
    def _book(user: User, schedule: Schedule, seat_ids, at=None):
        service = BookingService(db, clock=lambda: at or now)
        request = BookingCreateRequest(schedule_id=schedule.id, seat_ids=list(seat_ids))
        return service.create_booking(request, Actor.user(user.id))

    return _book


# ============================================================================
# Auth
# ============================================================================

def auth_headers(principal_id: int, kind: str = "user", role: str = "customer") -> dict:
    token = create_access_token({"sub": str(principal_id), "kind": kind, "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers():
    def _user_headers(user: User) -> dict:
        return auth_headers(user.id)

    return _user_headers


@pytest.fixture
def admin_headers():
    def _admin_headers(admin: AdminUser) -> dict:
        return auth_headers(admin.id, kind="admin", role=admin.role)

    return _admin_headers
