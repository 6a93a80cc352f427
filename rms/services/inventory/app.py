from contextlib import asynccontextmanager
from typing import List, Optional, Type, TypeVar

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func
from sqlalchemy.orm import Session

from rms.common.booking_rules import ACTIVE_STATUSES, utcnow
from rms.common.cache import LookupCache
from rms.common.config import get_settings
from rms.common.database import Base, engine, get_db
from rms.common.dependencies import get_current_user, require_admin
from rms.common.errors import register_error_handlers
from rms.common.logging_middleware import add_audit_middleware
from rms.common.models import Booking, Building, Cupboard, Facility, Maintenance, Resource, ResourceType, Shelf, User
from rms.common.rate_limit import apply_rate_limiter, limiter
from rms.common.schemas import (
    BookingRead,
    BuildingCreate,
    BuildingRead,
    BuildingUpdate,
    CupboardCreate,
    CupboardRead,
    FacilityCreate,
    FacilityRead,
    MaintenanceRead,
    ResourceCreate,
    ResourceDetail,
    ResourceRead,
    ResourceTypeCreate,
    ResourceTypeRead,
    ShelfCreate,
    ShelfRead,
)

settings = get_settings()
resource_type_cache: LookupCache[List[ResourceTypeRead]] = LookupCache(ttl=settings.resource_type_cache_ttl)
RESOURCE_TYPES_KEY = "resource-types"

ModelT = TypeVar("ModelT", bound=Base)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Inventory Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    register_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "inventory")
    return fastapi_app


app = create_app()


def _get_or_404(db: Session, model: Type[ModelT], object_id: int, label: str) -> ModelT:
    instance = db.get(model, object_id)
    if instance is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{label} not found")
    return instance


def _check_floor(building: Building, floor_number: int) -> None:
    if floor_number < 0 or floor_number > building.total_floors:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Floor number must be between 0 and {building.total_floors}",
        )


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "inventory"}


# Buildings


@app.get("/buildings", response_model=List[BuildingRead])
def list_buildings(_: User = Depends(get_current_user), db: Session = Depends(get_db)) -> List[Building]:
    return db.query(Building).order_by(Building.building_name).all()


@app.get("/buildings/{building_id}", response_model=BuildingRead)
def get_building(building_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)) -> Building:
    return _get_or_404(db, Building, building_id, "Building")


@app.post("/buildings", response_model=BuildingRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_building(
    request: Request,
    building_in: BuildingCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Building:
    building = Building(**building_in.model_dump())
    db.add(building)
    db.commit()
    db.refresh(building)
    return building


@app.put("/buildings/{building_id}", response_model=BuildingRead)
@limiter.limit("20/minute")
def update_building(
    request: Request,
    building_id: int,
    building_update: BuildingUpdate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Building:
    building = _get_or_404(db, Building, building_id, "Building")
    data = building_update.model_dump(exclude_unset=True, exclude_none=True)
    if "total_floors" in data:
        highest = (
            db.query(func.max(Resource.floor_number)).filter(Resource.building_id == building_id).scalar()
        )
        if highest is not None and highest > data["total_floors"]:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"A resource is located on floor {highest}; total floors cannot be lower",
            )
    for key, value in data.items():
        setattr(building, key, value)
    db.commit()
    db.refresh(building)
    return building


@app.delete("/buildings/{building_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def delete_building(
    request: Request,
    building_id: int,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    building = _get_or_404(db, Building, building_id, "Building")
    if building.resource_count:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot delete building with {building.resource_count} associated resources",
        )
    db.delete(building)
    db.commit()


# Resource types


def _load_resource_types(db: Session) -> List[ResourceTypeRead]:
    types = db.query(ResourceType).order_by(ResourceType.type_name).all()
    return [ResourceTypeRead.model_validate(resource_type) for resource_type in types]


def _ensure_unique_type_name(db: Session, type_name: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(ResourceType).filter(ResourceType.type_name == type_name)
    if exclude_id is not None:
        query = query.filter(ResourceType.id != exclude_id)
    if query.first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Resource type already exists")


@app.get("/resource-types", response_model=List[ResourceTypeRead])
def list_resource_types(_: User = Depends(get_current_user), db: Session = Depends(get_db)) -> List[ResourceTypeRead]:
    return resource_type_cache.get_or_load(RESOURCE_TYPES_KEY, lambda: _load_resource_types(db))


@app.get("/resource-types/{type_id}", response_model=ResourceTypeRead)
def get_resource_type(type_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)) -> ResourceType:
    return _get_or_404(db, ResourceType, type_id, "Resource type")


@app.post("/resource-types", response_model=ResourceTypeRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_resource_type(
    request: Request,
    type_in: ResourceTypeCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ResourceType:
    _ensure_unique_type_name(db, type_in.type_name)
    resource_type = ResourceType(type_name=type_in.type_name)
    db.add(resource_type)
    db.commit()
    db.refresh(resource_type)
    resource_type_cache.invalidate()
    return resource_type


@app.put("/resource-types/{type_id}", response_model=ResourceTypeRead)
@limiter.limit("20/minute")
def update_resource_type(
    request: Request,
    type_id: int,
    type_in: ResourceTypeCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ResourceType:
    resource_type = _get_or_404(db, ResourceType, type_id, "Resource type")
    _ensure_unique_type_name(db, type_in.type_name, exclude_id=type_id)
    resource_type.type_name = type_in.type_name
    db.commit()
    db.refresh(resource_type)
    resource_type_cache.invalidate()
    return resource_type


@app.delete("/resource-types/{type_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def delete_resource_type(
    request: Request,
    type_id: int,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    resource_type = _get_or_404(db, ResourceType, type_id, "Resource type")
    if resource_type.resource_count:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot delete resource type with {resource_type.resource_count} associated resources",
        )
    db.delete(resource_type)
    db.commit()
    resource_type_cache.invalidate()


# Resources


def _apply_resource_fields(db: Session, resource: Resource, resource_in: ResourceCreate) -> None:
    building = _get_or_404(db, Building, resource_in.building_id, "Building")
    _get_or_404(db, ResourceType, resource_in.resource_type_id, "Resource type")
    _check_floor(building, resource_in.floor_number)
    resource.resource_name = resource_in.resource_name
    resource.resource_type_id = resource_in.resource_type_id
    resource.building_id = resource_in.building_id
    resource.floor_number = resource_in.floor_number
    resource.description = resource_in.description or None


@app.get("/resources", response_model=List[ResourceRead])
def list_resources(
    resource_type_id: Optional[int] = None,
    building_id: Optional[int] = None,
    search: Optional[str] = None,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[Resource]:
    query = db.query(Resource)
    if resource_type_id is not None:
        query = query.filter(Resource.resource_type_id == resource_type_id)
    if building_id is not None:
        query = query.filter(Resource.building_id == building_id)
    if search:
        query = query.filter(Resource.resource_name.ilike(f"%{search.strip()}%"))
    return query.order_by(Resource.resource_name).all()


@app.get("/resources/{resource_id}", response_model=ResourceDetail)
def get_resource(resource_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)) -> ResourceDetail:
    resource = _get_or_404(db, Resource, resource_id, "Resource")
    recent_bookings = (
        db.query(Booking)
        .filter(Booking.resource_id == resource_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .limit(10)
        .all()
    )
    recent_maintenance = (
        db.query(Maintenance)
        .filter(Maintenance.resource_id == resource_id)
        .order_by(Maintenance.scheduled_date.desc())
        .limit(10)
        .all()
    )
    return ResourceDetail(
        **ResourceRead.model_validate(resource).model_dump(),
        facilities=[FacilityRead.model_validate(facility) for facility in resource.facilities],
        cupboards=[CupboardRead.model_validate(cupboard) for cupboard in resource.cupboards],
        recent_bookings=[BookingRead.model_validate(booking) for booking in recent_bookings],
        recent_maintenance=[MaintenanceRead.model_validate(item) for item in recent_maintenance],
    )


@app.post("/resources", response_model=ResourceRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_resource(
    request: Request,
    resource_in: ResourceCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Resource:
    resource = Resource()
    _apply_resource_fields(db, resource, resource_in)
    db.add(resource)
    db.commit()
    db.refresh(resource)
    resource_type_cache.invalidate()
    return resource


@app.put("/resources/{resource_id}", response_model=ResourceRead)
@limiter.limit("20/minute")
def update_resource(
    request: Request,
    resource_id: int,
    resource_in: ResourceCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Resource:
    resource = _get_or_404(db, Resource, resource_id, "Resource")
    _apply_resource_fields(db, resource, resource_in)
    db.commit()
    db.refresh(resource)
    resource_type_cache.invalidate()
    return resource


@app.delete("/resources/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def delete_resource(
    request: Request,
    resource_id: int,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    resource = _get_or_404(db, Resource, resource_id, "Resource")
    active_bookings = (
        db.query(func.count(Booking.id))
        .filter(
            Booking.resource_id == resource_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.end_datetime >= utcnow(),
        )
        .scalar()
    )
    if active_bookings:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Cannot delete resource with {active_bookings} active bookings",
        )
    db.delete(resource)
    db.commit()
    resource_type_cache.invalidate()


# Facilities


@app.get("/resources/{resource_id}/facilities", response_model=List[FacilityRead])
def list_facilities(resource_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)) -> List[Facility]:
    _get_or_404(db, Resource, resource_id, "Resource")
    return db.query(Facility).filter(Facility.resource_id == resource_id).order_by(Facility.facility_name).all()


@app.post("/resources/{resource_id}/facilities", response_model=FacilityRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_facility(
    request: Request,
    resource_id: int,
    facility_in: FacilityCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Facility:
    _get_or_404(db, Resource, resource_id, "Resource")
    facility = Facility(resource_id=resource_id, facility_name=facility_in.facility_name, details=facility_in.details or None)
    db.add(facility)
    db.commit()
    db.refresh(facility)
    return facility


@app.put("/facilities/{facility_id}", response_model=FacilityRead)
@limiter.limit("30/minute")
def update_facility(
    request: Request,
    facility_id: int,
    facility_in: FacilityCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Facility:
    facility = _get_or_404(db, Facility, facility_id, "Facility")
    facility.facility_name = facility_in.facility_name
    facility.details = facility_in.details or None
    db.commit()
    db.refresh(facility)
    return facility


@app.delete("/facilities/{facility_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
def delete_facility(
    request: Request,
    facility_id: int,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    facility = _get_or_404(db, Facility, facility_id, "Facility")
    db.delete(facility)
    db.commit()


# Cupboards and shelves


@app.get("/resources/{resource_id}/cupboards", response_model=List[CupboardRead])
def list_cupboards(resource_id: int, _: User = Depends(get_current_user), db: Session = Depends(get_db)) -> List[Cupboard]:
    _get_or_404(db, Resource, resource_id, "Resource")
    return db.query(Cupboard).filter(Cupboard.resource_id == resource_id).order_by(Cupboard.cupboard_name).all()


@app.post("/resources/{resource_id}/cupboards", response_model=CupboardRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_cupboard(
    request: Request,
    resource_id: int,
    cupboard_in: CupboardCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Cupboard:
    _get_or_404(db, Resource, resource_id, "Resource")
    cupboard = Cupboard(resource_id=resource_id, **cupboard_in.model_dump())
    db.add(cupboard)
    db.commit()
    db.refresh(cupboard)
    return cupboard


@app.put("/cupboards/{cupboard_id}", response_model=CupboardRead)
@limiter.limit("30/minute")
def update_cupboard(
    request: Request,
    cupboard_id: int,
    cupboard_in: CupboardCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Cupboard:
    cupboard = _get_or_404(db, Cupboard, cupboard_id, "Cupboard")
    highest = max((shelf.shelf_number for shelf in cupboard.shelves), default=0)
    if highest > cupboard_in.total_shelves:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Shelf {highest} exists; total shelves cannot be lower",
        )
    cupboard.cupboard_name = cupboard_in.cupboard_name
    cupboard.total_shelves = cupboard_in.total_shelves
    db.commit()
    db.refresh(cupboard)
    return cupboard


@app.delete("/cupboards/{cupboard_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
def delete_cupboard(
    request: Request,
    cupboard_id: int,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    cupboard = _get_or_404(db, Cupboard, cupboard_id, "Cupboard")
    db.delete(cupboard)
    db.commit()


@app.post("/cupboards/{cupboard_id}/shelves", response_model=ShelfRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_shelf(
    request: Request,
    cupboard_id: int,
    shelf_in: ShelfCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Shelf:
    cupboard = _get_or_404(db, Cupboard, cupboard_id, "Cupboard")
    if shelf_in.shelf_number > cupboard.total_shelves:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Shelf number must be between 1 and {cupboard.total_shelves}",
        )
    if any(shelf.shelf_number == shelf_in.shelf_number for shelf in cupboard.shelves):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Shelf number already in use")
    shelf = Shelf(cupboard_id=cupboard_id, **shelf_in.model_dump())
    db.add(shelf)
    db.commit()
    db.refresh(shelf)
    return shelf


@app.delete("/shelves/{shelf_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
def delete_shelf(
    request: Request,
    shelf_id: int,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    shelf = _get_or_404(db, Shelf, shelf_id, "Shelf")
    db.delete(shelf)
    db.commit()
