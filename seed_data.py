#!/usr/bin/env python3
"""
Seed Data Script

Creates roles, demo customers and admin users, one route with its stops, a
bus, a driver and a bookable schedule with its seat map.

Usage:
    python seed_data.py
"""

from datetime import timedelta
from decimal import Decimal

from bus_booking.auth.utils import get_password_hash
from bus_booking.database import Base, SessionLocal, engine
from bus_booking.models import (
    AdminUser, Booking, BookingSeat, BookingStatusHistory, Bus, Driver, Role, Route,
    Schedule, Seat, Stop, User, UserHasRole
)
from bus_booking.utils import utcnow

def create_seed_data():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()

    try:
        print("🚀 Creating seed data for the bus booking system...")

        # Clear existing data (in reverse dependency order)
        print("Clearing existing data...")
        db.query(BookingStatusHistory).delete()
        db.query(BookingSeat).delete()
        db.query(Seat).update({Seat.booking_id: None})
        db.query(Booking).delete()
        db.query(Seat).delete()
        db.query(Schedule).delete()
        db.query(Stop).delete()
        db.query(Route).delete()
        db.query(Bus).delete()
        db.query(Driver).delete()
        db.query(UserHasRole).delete()
        db.query(User).delete()
        db.query(Role).delete()
        db.query(AdminUser).delete()

        # 1. Roles
        print("Creating roles...")
        roles = [Role(name="customer"), Role(name="admin"), Role(name="manager")]
        db.add_all(roles)
        db.flush()

        # 2. Customers
        print("Creating demo customers...")
        customers = [
            User(full_name="Nguyen Van A", email="customer1@example.com", phone_number="0900000001",
                 password=get_password_hash("customer123")),
            User(full_name="Tran Thi B", email="customer2@example.com", phone_number="0900000002",
                 password=get_password_hash("customer123")),
        ]
        db.add_all(customers)
        db.flush()
        db.add_all([UserHasRole(user_id=c.id, role_id=roles[0].id) for c in customers])

        # 3. Admin users
        print("Creating admin users...")
        admins = [
            AdminUser(username="admin", email="admin@example.com", full_name="System Administrator",
                      role="admin", password_hash=get_password_hash("admin123")),
            AdminUser(username="manager", email="manager@example.com", full_name="Operations Manager",
                      role="manager", password_hash=get_password_hash("manager123")),
        ]
        db.add_all(admins)
        db.flush()

        # 4. Route and stops
        print("Creating route and stops...")
        route = Route(departure_province="Ha Noi", arrival_province="Hai Phong",
                      distance_km=Decimal("120"), estimated_duration_minutes=150)
        db.add(route)
        db.flush()

        stops = [
            Stop(route_id=route.id, name="My Dinh Bus Station", stop_type="pickup", stop_order=1),
            Stop(route_id=route.id, name="Gia Lam Bus Station", stop_type="both", stop_order=2),
            Stop(route_id=route.id, name="Niem Nghia Bus Station", stop_type="dropoff", stop_order=3),
        ]
        db.add_all(stops)

        # 5. Bus and driver
        print("Creating bus and driver...")
        bus = Bus(license_plate="29B-123.45", bus_type="Limousine 22", seat_count=22)
        driver = Driver(full_name="Le Van C", phone_number="0911111111", license_number="D-000123")
        db.add_all([bus, driver])
        db.flush()

        # 6. Schedule and seat map
        print("Creating schedule and seats...")
        schedule = Schedule(
            route_id=route.id,
            bus_id=bus.id,
            driver_id=driver.id,
            departure_time=(utcnow() + timedelta(days=1)).replace(minute=0, second=0, microsecond=0),
            price=Decimal("100000")
        )
        db.add(schedule)
        db.flush()

        seats = []
        for floor, prefix in (("lower", "A"), ("upper", "B")):
            for number in range(1, bus.seat_count // 2 + 1):
                seats.append(Seat(schedule_id=schedule.id, seat_number=f"{prefix}{number:02d}", floor=floor))
        db.add_all(seats)

        db.commit()
        print("✅ Successfully created seed data!")
        print("Created:")
        print(f"  - {len(roles)} roles")
        print(f"  - {len(customers)} customers")
        print(f"  - {len(admins)} admin users")
        print(f"  - 1 route with {len(stops)} stops")
        print(f"  - 1 schedule with {len(seats)} seats")

    except Exception as e:
        print(f"❌ Error creating seed data: {e}")
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    create_seed_data()
