#!/usr/bin/env python3
"""Populate the database with an administrator and a small sample inventory.

Safe to run repeatedly: records that already exist are left untouched.
"""
import logging
from datetime import timedelta

from sqlalchemy.orm import Session

from rms.common.auth import get_password_hash
from rms.common.booking_rules import utcnow
from rms.common.config import get_settings
from rms.common.database import Base, SessionLocal, engine
from rms.common.models import (
    Booking,
    BookingStatus,
    Building,
    Cupboard,
    Facility,
    Maintenance,
    Resource,
    ResourceType,
    RoleEnum,
    Shelf,
    User,
)

logger = logging.getLogger("rms.seed")

USERS = [
    ("John Doe", "employee@rms.com", "Employee@123", RoleEnum.EMPLOYEE),
    ("Jane Smith", "student@rms.com", "Student@123", RoleEnum.STUDENT),
]

RESOURCE_TYPES = ["Classroom", "Computer Lab", "Auditorium", "Meeting Room"]

BUILDINGS = [
    ("Main Building", "A", 5),
    ("Science Block", "B", 4),
]

RESOURCES = [
    (
        "Room 101", "Classroom", "Main Building", 1, "Large classroom with modern amenities",
        [("Projector", "HD Projector with HDMI"), ("Air Conditioning", "Central AC"), ("Whiteboard", "Smart whiteboard")],
    ),
    (
        "Computer Lab 1", "Computer Lab", "Science Block", 2, "Computer lab with 50 workstations",
        [("Computers", "50 workstations"), ("Projector", "4K Projector"), ("Network", "High-speed WiFi and LAN")],
    ),
    (
        "Main Auditorium", "Auditorium", "Main Building", 1, "Large auditorium for events and seminars",
        [("Seating", "Capacity: 500 people"), ("Sound System", "Professional PA system"), ("Stage", "Stage with lighting")],
    ),
]

SHELVES = [
    (1, 20, "Books and materials"),
    (2, 15, "Teaching aids"),
    (3, 25, "Stationery"),
    (4, 20, "Equipment"),
    (5, 10, "Archive"),
]


def _get_or_create_user(db: Session, name: str, email: str, password: str, role: RoleEnum) -> User:
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(name=name, email=email, hashed_password=get_password_hash(password), role=role)
    db.add(user)
    db.flush()
    logger.info("Created %s user %s", role.value.lower(), email)
    return user


def seed(db: Session) -> None:
    settings = get_settings()
    admin = _get_or_create_user(
        db, "System Administrator", settings.default_admin_email, settings.default_admin_password, RoleEnum.ADMIN
    )
    employee, student = (_get_or_create_user(db, *entry) for entry in USERS)

    types = {}
    for type_name in RESOURCE_TYPES:
        types[type_name] = db.query(ResourceType).filter(ResourceType.type_name == type_name).first() or ResourceType(
            type_name=type_name
        )
        db.add(types[type_name])

    buildings = {}
    for building_name, building_number, total_floors in BUILDINGS:
        building = db.query(Building).filter(Building.building_name == building_name).first()
        if building is None:
            building = Building(building_name=building_name, building_number=building_number, total_floors=total_floors)
            db.add(building)
        buildings[building_name] = building
    db.flush()

    if db.query(Resource).count():
        db.commit()
        logger.info("Resources already present, skipping sample inventory")
        return

    resources = []
    for name, type_name, building_name, floor, description, facilities in RESOURCES:
        resource = Resource(
            resource_name=name,
            resource_type=types[type_name],
            building=buildings[building_name],
            floor_number=floor,
            description=description,
            facilities=[Facility(facility_name=f_name, details=details) for f_name, details in facilities],
        )
        db.add(resource)
        resources.append(resource)

    resources[0].cupboards.append(
        Cupboard(
            cupboard_name="Storage Cupboard A",
            total_shelves=len(SHELVES),
            shelves=[Shelf(shelf_number=n, capacity=c, description=d) for n, c, d in SHELVES],
        )
    )

    tomorrow = (utcnow() + timedelta(days=1)).replace(minute=0, second=0, microsecond=0)
    for resource, maintenance_type, notes in zip(
        resources,
        ["Cleaning", "Equipment Check", "Sound System Maintenance"],
        ["Regular cleaning scheduled", "Check all computers and network equipment", "Annual sound system servicing"],
    ):
        db.add(Maintenance(resource=resource, maintenance_type=maintenance_type, scheduled_date=tomorrow, notes=notes))

    db.add_all(
        [
            Booking(
                resource=resources[0],
                user=employee,
                start_datetime=tomorrow.replace(hour=9),
                end_datetime=tomorrow.replace(hour=11),
                status=BookingStatus.APPROVED,
                approver_id=admin.id,
                purpose="Department meeting",
            ),
            Booking(
                resource=resources[1],
                user=student,
                start_datetime=tomorrow.replace(hour=14),
                end_datetime=tomorrow.replace(hour=16),
                status=BookingStatus.PENDING,
                purpose="Programming workshop",
            ),
        ]
    )
    db.commit()
    logger.info("Seeded %s resources with facilities, maintenance and bookings", len(resources))


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
