import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func
from sqlalchemy.orm import Session

from rms.common import booking_rules
from rms.common.booking_rules import ACTIVE_STATUSES, as_naive_utc, utcnow
from rms.common.config import get_settings
from rms.common.database import Base, engine, get_db
from rms.common.dependencies import get_current_user, require_admin
from rms.common.errors import register_error_handlers
from rms.common.events import publish_booking_event
from rms.common.logging_middleware import add_audit_middleware
from rms.common.models import Booking, BookingStatus, Building, Resource, ResourceType, RoleEnum, User
from rms.common.rate_limit import apply_rate_limiter, limiter
from rms.common.schemas import AvailabilityRead, BookingCreate, BookingRead, BookingStatusUpdate

settings = get_settings()
logger = logging.getLogger(__name__)

# Approved and rejected bookings carry an admin decision; only admins remove them.
OWNER_DELETABLE_STATUSES = (BookingStatus.PENDING, BookingStatus.CANCELLED)


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Bookings Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    register_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "bookings")
    return fastapi_app


app = create_app()


def _get_booking(db: Session, booking_id: int) -> Booking:
    booking = db.get(Booking, booking_id)
    if not booking:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


def _ensure_visible(booking: Booking, user: User) -> None:
    if user.role != RoleEnum.ADMIN and booking.user_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def _transition(db: Session, booking_id: int, target: BookingStatus, actor: User) -> Booking:
    booking = _get_booking(db, booking_id)
    booking_rules.apply_transition(booking, target, actor)
    db.commit()
    db.refresh(booking)
    publish_booking_event(f"booking.{target.value.lower()}", booking)
    return booking


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "bookings"}


@app.get("/bookings", response_model=List[BookingRead])
@limiter.limit("60/minute")
def list_bookings(
    request: Request,
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> List[Booking]:
    query = db.query(Booking)
    if current_user.role != RoleEnum.ADMIN:
        query = query.filter(Booking.user_id == current_user.id)
    if status_filter is not None:
        query = query.filter(Booking.status == status_filter)
    return query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()


@app.post("/bookings", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_booking(
    request: Request,
    booking_in: BookingCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Booking:
    booking = booking_rules.create_booking(
        db,
        current_user,
        booking_in.resource_id,
        booking_in.start_datetime,
        booking_in.end_datetime,
        purpose=booking_in.purpose,
    )
    publish_booking_event("booking.created", booking)
    return booking


@app.get("/bookings/availability", response_model=AvailabilityRead)
@limiter.limit("60/minute")
def check_availability(
    request: Request,
    resource_id: int,
    start_datetime: datetime = Query(...),
    end_datetime: datetime = Query(...),
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AvailabilityRead:
    start, end = as_naive_utc(start_datetime), as_naive_utc(end_datetime)
    if start >= end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End time must be after start time")
    if db.get(Resource, resource_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")
    available = not booking_rules.has_conflict(db, resource_id, start, end)
    return AvailabilityRead(resource_id=resource_id, start_datetime=start, end_datetime=end, available=available)


@app.get("/bookings/{booking_id}", response_model=BookingRead)
def get_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Booking:
    booking = _get_booking(db, booking_id)
    _ensure_visible(booking, current_user)
    return booking


@app.put("/bookings/{booking_id}", response_model=BookingRead)
@limiter.limit("30/minute")
def update_booking_status(
    request: Request,
    booking_id: int,
    status_update: BookingStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Booking:
    return _transition(db, booking_id, status_update.status, current_user)


@app.post("/bookings/{booking_id}/cancel", response_model=BookingRead)
@limiter.limit("30/minute")
def cancel_booking(
    request: Request,
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Booking:
    return _transition(db, booking_id, BookingStatus.CANCELLED, current_user)


@app.post("/bookings/{booking_id}/approve", response_model=BookingRead)
@limiter.limit("30/minute")
def approve_booking(
    request: Request,
    booking_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Booking:
    return _transition(db, booking_id, BookingStatus.APPROVED, admin)


@app.post("/bookings/{booking_id}/reject", response_model=BookingRead)
@limiter.limit("30/minute")
def reject_booking(
    request: Request,
    booking_id: int,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Booking:
    return _transition(db, booking_id, BookingStatus.REJECTED, admin)


@app.delete("/bookings/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def delete_booking(
    request: Request,
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    booking = _get_booking(db, booking_id)
    _ensure_visible(booking, current_user)
    if current_user.role != RoleEnum.ADMIN and booking.status not in OWNER_DELETABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only pending or cancelled bookings can be deleted",
        )
    db.delete(booking)
    db.commit()
    logger.info("Booking %s deleted by user %s", booking_id, current_user.id)


@app.get("/dashboard/stats")
@limiter.limit("30/minute")
def dashboard_stats(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> dict[str, Any]:
    now = utcnow()
    stats: dict[str, Any] = {
        "total_resources": db.query(func.count(Resource.id)).scalar(),
        "my_bookings": db.query(func.count(Booking.id)).filter(Booking.user_id == current_user.id).scalar(),
    }
    if current_user.role == RoleEnum.ADMIN:
        stats.update(
            total_bookings=db.query(func.count(Booking.id)).scalar(),
            pending_approvals=db.query(func.count(Booking.id)).filter(Booking.status == BookingStatus.PENDING).scalar(),
            total_users=db.query(func.count(User.id)).scalar(),
            total_buildings=db.query(func.count(Building.id)).scalar(),
            total_resource_types=db.query(func.count(ResourceType.id)).scalar(),
            upcoming_bookings=db.query(func.count(Booking.id))
            .filter(
                Booking.status == BookingStatus.APPROVED,
                Booking.start_datetime >= now,
                Booking.start_datetime <= now + timedelta(days=7),
            )
            .scalar(),
            recent_bookings=[
                BookingRead.model_validate(booking).model_dump(mode="json")
                for booking in db.query(Booking).order_by(Booking.created_at.desc(), Booking.id.desc()).limit(5)
            ],
        )
    else:
        upcoming = (
            db.query(Booking)
            .filter(
                Booking.user_id == current_user.id,
                Booking.status.in_(ACTIVE_STATUSES),
                Booking.start_datetime >= now,
            )
            .order_by(Booking.start_datetime.asc())
            .limit(5)
            .all()
        )
        stats["upcoming_bookings"] = [BookingRead.model_validate(booking).model_dump(mode="json") for booking in upcoming]
    return stats
