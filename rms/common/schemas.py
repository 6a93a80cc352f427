"""Pydantic schemas shared across the services."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .booking_rules import as_naive_utc
from .models import BookingStatus, MaintenanceStatus, RoleEnum


class InputModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class UserRegister(InputModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: RoleEnum = RoleEnum.STUDENT

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("role")
    @classmethod
    def no_self_service_admins(cls, value: RoleEnum) -> RoleEnum:
        if value == RoleEnum.ADMIN:
            raise ValueError("Role must be either EMPLOYEE or STUDENT")
        return value


class UserRead(BaseModel):
    id: int
    name: str
    email: str
    role: RoleEnum
    created_at: datetime

    model_config = {"from_attributes": True}


class LoginRequest(InputModel):
    email: str
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class BuildingCreate(InputModel):
    building_name: str = Field(..., min_length=1, max_length=100)
    building_number: str = Field(..., min_length=1, max_length=20)
    total_floors: int = Field(..., ge=1)


class BuildingUpdate(InputModel):
    building_name: Optional[str] = Field(None, min_length=1, max_length=100)
    building_number: Optional[str] = Field(None, min_length=1, max_length=20)
    total_floors: Optional[int] = Field(None, ge=1)


class BuildingSummary(BaseModel):
    id: int
    building_name: str
    building_number: str

    model_config = {"from_attributes": True}


class BuildingRead(BuildingSummary):
    total_floors: int
    resource_count: int = 0


class ResourceTypeCreate(InputModel):
    type_name: str = Field(..., min_length=1, max_length=100)


class ResourceTypeSummary(BaseModel):
    id: int
    type_name: str

    model_config = {"from_attributes": True}


class ResourceTypeRead(ResourceTypeSummary):
    resource_count: int = 0


class ResourceCreate(InputModel):
    resource_name: str = Field(..., min_length=1, max_length=150)
    resource_type_id: int
    building_id: int
    floor_number: int
    description: Optional[str] = None


class ResourceRead(BaseModel):
    id: int
    resource_name: str
    resource_type_id: int
    building_id: int
    floor_number: int
    description: Optional[str] = None
    resource_type: ResourceTypeSummary
    building: BuildingSummary

    model_config = {"from_attributes": True}


class FacilityCreate(InputModel):
    facility_name: str = Field(..., min_length=1, max_length=100)
    details: Optional[str] = None


class FacilityRead(BaseModel):
    id: int
    resource_id: int
    facility_name: str
    details: Optional[str] = None

    model_config = {"from_attributes": True}


class ShelfCreate(InputModel):
    shelf_number: int = Field(..., ge=1)
    capacity: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None


class ShelfRead(BaseModel):
    id: int
    cupboard_id: int
    shelf_number: int
    capacity: Optional[int] = None
    description: Optional[str] = None

    model_config = {"from_attributes": True}


class CupboardCreate(InputModel):
    cupboard_name: str = Field(..., min_length=1, max_length=100)
    total_shelves: int = Field(..., ge=1)


class CupboardRead(BaseModel):
    id: int
    resource_id: int
    cupboard_name: str
    total_shelves: int
    shelves: List[ShelfRead] = []

    model_config = {"from_attributes": True}


class MaintenanceCreate(InputModel):
    resource_id: int
    maintenance_type: str = Field(..., min_length=1, max_length=100)
    scheduled_date: datetime
    notes: Optional[str] = None


class MaintenanceUpdate(InputModel):
    maintenance_type: Optional[str] = Field(None, min_length=1, max_length=100)
    scheduled_date: Optional[datetime] = None
    status: Optional[MaintenanceStatus] = None
    notes: Optional[str] = None


class MaintenanceRead(BaseModel):
    id: int
    resource_id: int
    maintenance_type: str
    scheduled_date: datetime
    status: MaintenanceStatus
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingCreate(InputModel):
    resource_id: int
    start_datetime: datetime
    end_datetime: datetime
    purpose: Optional[str] = Field(None, max_length=500)

    @field_validator("start_datetime", "end_datetime")
    @classmethod
    def to_naive_utc(cls, value: datetime) -> datetime:
        return as_naive_utc(value)


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookingRead(BaseModel):
    id: int
    resource_id: int
    user_id: int
    approver_id: Optional[int] = None
    start_datetime: datetime
    end_datetime: datetime
    status: BookingStatus
    purpose: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AvailabilityRead(BaseModel):
    resource_id: int
    start_datetime: datetime
    end_datetime: datetime
    available: bool


class ResourceDetail(ResourceRead):
    facilities: List[FacilityRead] = []
    cupboards: List[CupboardRead] = []
    recent_bookings: List[BookingRead] = []
    recent_maintenance: List[MaintenanceRead] = []
