from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from rms.common.booking_rules import as_naive_utc
from rms.common.config import get_settings
from rms.common.database import Base, engine, get_db
from rms.common.dependencies import require_admin
from rms.common.errors import register_error_handlers
from rms.common.logging_middleware import add_audit_middleware
from rms.common.models import Maintenance, MaintenanceStatus, Resource, User
from rms.common.rate_limit import apply_rate_limiter, limiter
from rms.common.schemas import MaintenanceCreate, MaintenanceRead, MaintenanceUpdate

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Maintenance Service", version="1.0.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    register_error_handlers(fastapi_app)
    add_audit_middleware(fastapi_app, "maintenance")
    return fastapi_app


app = create_app()


def _get_maintenance(db: Session, maintenance_id: int) -> Maintenance:
    maintenance = db.get(Maintenance, maintenance_id)
    if not maintenance:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Maintenance not found")
    return maintenance


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "maintenance"}


@app.get("/maintenance", response_model=List[MaintenanceRead])
def list_maintenance(
    status_filter: Optional[MaintenanceStatus] = Query(None, alias="status"),
    resource_id: Optional[int] = None,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> List[Maintenance]:
    query = db.query(Maintenance)
    if status_filter is not None:
        query = query.filter(Maintenance.status == status_filter)
    if resource_id is not None:
        query = query.filter(Maintenance.resource_id == resource_id)
    return query.order_by(Maintenance.scheduled_date.asc()).all()


@app.post("/maintenance", response_model=MaintenanceRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
def create_maintenance(
    request: Request,
    maintenance_in: MaintenanceCreate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Maintenance:
    if db.get(Resource, maintenance_in.resource_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")
    maintenance = Maintenance(
        resource_id=maintenance_in.resource_id,
        maintenance_type=maintenance_in.maintenance_type,
        scheduled_date=as_naive_utc(maintenance_in.scheduled_date),
        notes=maintenance_in.notes or None,
        status=MaintenanceStatus.SCHEDULED,
    )
    db.add(maintenance)
    db.commit()
    db.refresh(maintenance)
    return maintenance


@app.put("/maintenance/{maintenance_id}", response_model=MaintenanceRead)
@limiter.limit("30/minute")
def update_maintenance(
    request: Request,
    maintenance_id: int,
    maintenance_update: MaintenanceUpdate,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Maintenance:
    maintenance = _get_maintenance(db, maintenance_id)
    data = maintenance_update.model_dump(exclude_unset=True, exclude_none=True)
    if "scheduled_date" in data:
        data["scheduled_date"] = as_naive_utc(data["scheduled_date"])
    for key, value in data.items():
        setattr(maintenance, key, value)
    db.commit()
    db.refresh(maintenance)
    return maintenance


@app.delete("/maintenance/{maintenance_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("30/minute")
def delete_maintenance(
    request: Request,
    maintenance_id: int,
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    maintenance = _get_maintenance(db, maintenance_id)
    db.delete(maintenance)
    db.commit()
