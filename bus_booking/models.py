from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, Text, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import relationship

from bus_booking.database import Base
from bus_booking.utils import utcnow

# SQLite only autoincrements INTEGER primary keys
PK = BigInteger().with_variant(Integer, "sqlite")

# ================================
# Users & Roles
# ================================
class User(Base):
    __tablename__ = "users"

    id = Column(PK, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone_number = Column(String(20))
    password = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user_roles = relationship("UserHasRole", back_populates="user")
    bookings = relationship("Booking", back_populates="user")

class Role(Base):
    __tablename__ = "roles"

    id = Column(PK, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    user_roles = relationship("UserHasRole", back_populates="role")

class UserHasRole(Base):
    __tablename__ = "user_has_roles"

    id = Column(PK, primary_key=True, index=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False)
    role_id = Column(BigInteger, ForeignKey("roles.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    user = relationship("User", back_populates="user_roles")
    role = relationship("Role", back_populates="user_roles")

class AdminUser(Base):
    __tablename__ = "admin_users"

    id = Column(PK, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, index=True)
    is_active = Column(Boolean, default=True, index=True)
    last_login = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

# ================================
# Routes, Stops, Buses, Drivers
# ================================
class Route(Base):
    __tablename__ = "routes"

    id = Column(PK, primary_key=True, index=True)
    departure_province = Column(String(255), nullable=False)
    arrival_province = Column(String(255), nullable=False)
    distance_km = Column(Numeric(8, 2))
    estimated_duration_minutes = Column(Integer)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    stops = relationship("Stop", back_populates="route")
    schedules = relationship("Schedule", back_populates="route")

class Stop(Base):
    __tablename__ = "stops"

    id = Column(PK, primary_key=True, index=True)
    route_id = Column(BigInteger, ForeignKey("routes.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    address = Column(Text)
    stop_type = Column(String(20), default="pickup")  # pickup / dropoff / both
    stop_order = Column(Integer, default=0)

    # Relationships
    route = relationship("Route", back_populates="stops")

class Bus(Base):
    __tablename__ = "buses"

    id = Column(PK, primary_key=True, index=True)
    license_plate = Column(String(20), unique=True, nullable=False)
    bus_type = Column(String(100))
    seat_count = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    schedules = relationship("Schedule", back_populates="bus")

class Driver(Base):
    __tablename__ = "drivers"

    id = Column(PK, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    phone_number = Column(String(20))
    license_number = Column(String(50))

    # Relationships
    schedules = relationship("Schedule", back_populates="driver")

# ================================
# Schedules & Seats
# ================================
class Schedule(Base):
    __tablename__ = "schedules"

    id = Column(PK, primary_key=True, index=True)
    route_id = Column(BigInteger, ForeignKey("routes.id"), nullable=False, index=True)
    bus_id = Column(BigInteger, ForeignKey("buses.id"), nullable=False)
    driver_id = Column(BigInteger, ForeignKey("drivers.id"))
    departure_time = Column(DateTime, nullable=False, index=True)
    price = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), default="scheduled", nullable=False, index=True)
    is_enabled = Column(Boolean, default=True, nullable=False)
    admin_note = Column(Text)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    route = relationship("Route", back_populates="schedules")
    bus = relationship("Bus", back_populates="schedules")
    driver = relationship("Driver", back_populates="schedules")
    seats = relationship("Seat", back_populates="schedule", order_by="Seat.id")
    bookings = relationship("Booking", back_populates="schedule")

class Seat(Base):
    __tablename__ = "seats"
    __table_args__ = (UniqueConstraint("schedule_id", "seat_number", name="uq_seat_schedule_number"),)

    id = Column(PK, primary_key=True, index=True)
    schedule_id = Column(BigInteger, ForeignKey("schedules.id"), nullable=False, index=True)
    seat_number = Column(String(10), nullable=False)
    floor = Column(String(10), default="main")  # upper / lower / main
    status = Column(String(20), default="available", nullable=False, index=True)
    is_enabled = Column(Boolean, default=True, nullable=False)
    price_override = Column(Numeric(12, 2))
    pending_since = Column(DateTime)
    booking_id = Column(BigInteger, ForeignKey("bookings.id"), index=True)

    # Relationships
    schedule = relationship("Schedule", back_populates="seats")

# ================================
# Bookings
# ================================
class Booking(Base):
    __tablename__ = "bookings"

    id = Column(PK, primary_key=True, index=True)
    user_id = Column(BigInteger, ForeignKey("users.id"), nullable=False, index=True)
    schedule_id = Column(BigInteger, ForeignKey("schedules.id"), nullable=False, index=True)
    pickup_stop_id = Column(BigInteger, ForeignKey("stops.id"))
    dropoff_stop_id = Column(BigInteger, ForeignKey("stops.id"))
    total_price = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), default="pending", nullable=False, index=True)
    payment_method = Column(String(50), default="cash")
    payment_status = Column(String(20), default="pending")
    order_code = Column(String(20), unique=True, index=True)
    payment_request_id = Column(String(100), index=True)
    payment_reference = Column(String(100))
    payment_completed_at = Column(DateTime)
    cancel_reason = Column(Text)
    booked_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="bookings")
    schedule = relationship("Schedule", back_populates="bookings")
    pickup_stop = relationship("Stop", foreign_keys=[pickup_stop_id])
    dropoff_stop = relationship("Stop", foreign_keys=[dropoff_stop_id])
    booking_seats = relationship(
        "BookingSeat", back_populates="booking", order_by="BookingSeat.position", cascade="all, delete-orphan"
    )
    history = relationship("BookingStatusHistory", back_populates="booking", order_by="BookingStatusHistory.id")

    @property
    def seat_ids(self):
        return [bs.seat_id for bs in self.booking_seats]

class BookingSeat(Base):
    __tablename__ = "booking_seats"
    __table_args__ = (UniqueConstraint("booking_id", "seat_id", name="uq_booking_seat"),)

    id = Column(PK, primary_key=True, index=True)
    booking_id = Column(BigInteger, ForeignKey("bookings.id"), nullable=False, index=True)
    seat_id = Column(BigInteger, ForeignKey("seats.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    # Relationships
    booking = relationship("Booking", back_populates="booking_seats")
    seat = relationship("Seat")

class BookingStatusHistory(Base):
    __tablename__ = "booking_status_history"

    id = Column(PK, primary_key=True, index=True)
    booking_id = Column(BigInteger, ForeignKey("bookings.id"), nullable=False, index=True)
    from_status = Column(String(20))
    to_status = Column(String(20), nullable=False)
    actor_kind = Column(String(20), nullable=False)
    actor_id = Column(BigInteger)
    reason = Column(Text)
    created_at = Column(DateTime, default=utcnow, index=True)

    # Relationships
    booking = relationship("Booking", back_populates="history")
