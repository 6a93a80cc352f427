"""SQLAlchemy models shared across all services."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime, Enum as SqlEnum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


class RoleEnum(str, Enum):
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"
    STUDENT = "STUDENT"


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class MaintenanceStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255))
    role: Mapped[RoleEnum] = mapped_column(SqlEnum(RoleEnum), default=RoleEnum.STUDENT)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    bookings: Mapped[List["Booking"]] = relationship(
        back_populates="user", foreign_keys="Booking.user_id", cascade="all, delete-orphan"
    )


class Building(Base):
    __tablename__ = "buildings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    building_name: Mapped[str] = mapped_column(String(100), index=True)
    building_number: Mapped[str] = mapped_column(String(20))
    total_floors: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    resources: Mapped[List["Resource"]] = relationship(back_populates="building")

    @property
    def resource_count(self) -> int:
        return len(self.resources)


class ResourceType(Base):
    __tablename__ = "resource_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    type_name: Mapped[str] = mapped_column(String(100), unique=True)

    resources: Mapped[List["Resource"]] = relationship(back_populates="resource_type")

    @property
    def resource_count(self) -> int:
        return len(self.resources)


class Resource(Base):
    __tablename__ = "resources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    resource_name: Mapped[str] = mapped_column(String(150), index=True)
    resource_type_id: Mapped[int] = mapped_column(ForeignKey("resource_types.id"), index=True)
    building_id: Mapped[int] = mapped_column(ForeignKey("buildings.id"), index=True)
    floor_number: Mapped[int] = mapped_column(Integer)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    resource_type: Mapped[ResourceType] = relationship(back_populates="resources")
    building: Mapped[Building] = relationship(back_populates="resources")
    facilities: Mapped[List["Facility"]] = relationship(back_populates="resource", cascade="all, delete-orphan")
    cupboards: Mapped[List["Cupboard"]] = relationship(back_populates="resource", cascade="all, delete-orphan")
    bookings: Mapped[List["Booking"]] = relationship(back_populates="resource", cascade="all, delete-orphan")
    maintenance: Mapped[List["Maintenance"]] = relationship(back_populates="resource", cascade="all, delete-orphan")


class Facility(Base):
    __tablename__ = "facilities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id", ondelete="CASCADE"), index=True)
    facility_name: Mapped[str] = mapped_column(String(100))
    details: Mapped[Optional[str]] = mapped_column(Text, default=None)

    resource: Mapped[Resource] = relationship(back_populates="facilities")


class Cupboard(Base):
    __tablename__ = "cupboards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id", ondelete="CASCADE"), index=True)
    cupboard_name: Mapped[str] = mapped_column(String(100))
    total_shelves: Mapped[int] = mapped_column(Integer)

    resource: Mapped[Resource] = relationship(back_populates="cupboards")
    shelves: Mapped[List["Shelf"]] = relationship(
        back_populates="cupboard", cascade="all, delete-orphan", order_by="Shelf.shelf_number"
    )


class Shelf(Base):
    __tablename__ = "shelves"
    __table_args__ = (UniqueConstraint("cupboard_id", "shelf_number", name="uq_shelf_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    cupboard_id: Mapped[int] = mapped_column(ForeignKey("cupboards.id", ondelete="CASCADE"), index=True)
    shelf_number: Mapped[int] = mapped_column(Integer)
    capacity: Mapped[Optional[int]] = mapped_column(Integer, default=None)
    description: Mapped[Optional[str]] = mapped_column(Text, default=None)

    cupboard: Mapped[Cupboard] = relationship(back_populates="shelves")


class Maintenance(Base):
    __tablename__ = "maintenance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id", ondelete="CASCADE"), index=True)
    maintenance_type: Mapped[str] = mapped_column(String(100))
    scheduled_date: Mapped[datetime] = mapped_column(DateTime, index=True)
    status: Mapped[MaintenanceStatus] = mapped_column(SqlEnum(MaintenanceStatus), default=MaintenanceStatus.SCHEDULED)
    notes: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    resource: Mapped[Resource] = relationship(back_populates="maintenance")


class Booking(Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    resource_id: Mapped[int] = mapped_column(ForeignKey("resources.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    approver_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), default=None)
    start_datetime: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_datetime: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[BookingStatus] = mapped_column(SqlEnum(BookingStatus), default=BookingStatus.PENDING, index=True)
    purpose: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, default=None, onupdate=datetime.utcnow)

    resource: Mapped[Resource] = relationship(back_populates="bookings")
    user: Mapped[User] = relationship(back_populates="bookings", foreign_keys=[user_id])
    approver: Mapped[Optional[User]] = relationship(foreign_keys=[approver_id])
