"""Booking conflict detection and the booking status state machine.

Intervals are half-open: a booking for ``[09:00, 11:00)`` does not collide with
one starting at ``11:00``. Only PENDING and APPROVED bookings hold a slot.

All datetimes are compared as naive UTC, which is how they are stored.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .errors import (
    BookingValidationError,
    InvalidTransition,
    PermissionDenied,
    ResourceNotFound,
    SchedulingConflict,
)
from .models import Booking, BookingStatus, Resource, RoleEnum, User

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.APPROVED)

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.APPROVED, BookingStatus.REJECTED, BookingStatus.CANCELLED}),
    BookingStatus.APPROVED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.REJECTED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

ADMIN_ONLY_TARGETS = frozenset({BookingStatus.APPROVED, BookingStatus.REJECTED})

_INVALID_STATE_MESSAGES = {
    BookingStatus.APPROVED: "Can only approve pending bookings",
    BookingStatus.REJECTED: "Can only reject pending bookings",
    BookingStatus.CANCELLED: "Can only cancel pending or approved bookings",
}


def as_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def validate_booking_window(start: datetime, end: datetime, now: Optional[datetime] = None) -> None:
    if start >= end:
        raise BookingValidationError("End time must be after start time")
    if start < (now or utcnow()):
        raise BookingValidationError("Cannot book past dates")


def has_conflict(db: Session, resource_id: int, start: datetime, end: datetime) -> bool:
    query = select(Booking.id).where(
        Booking.resource_id == resource_id,
        Booking.status.in_(ACTIVE_STATUSES),
        Booking.start_datetime < end,
        Booking.end_datetime > start,
    )
    return db.execute(query.limit(1)).first() is not None


def ensure_available(db: Session, resource_id: int, start: datetime, end: datetime) -> None:
    if has_conflict(db, resource_id, start, end):
        logger.info("Slot %s - %s on resource %s is taken", start, end, resource_id)
        raise SchedulingConflict("Resource is already booked for this time slot")


def lock_resource(db: Session, resource_id: int) -> Optional[Resource]:
    """Load the resource with a row lock held until the surrounding transaction ends.

    Concurrent creators for the same resource queue up here, so the conflict
    check and the insert that follows it see a consistent set of bookings.
    Backends without ``SELECT ... FOR UPDATE`` (SQLite) ignore the lock.
    """
    return db.execute(select(Resource).where(Resource.id == resource_id).with_for_update()).scalar_one_or_none()


def create_booking(
    db: Session,
    requester: User,
    resource_id: int,
    start: datetime,
    end: datetime,
    purpose: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Booking:
    """Validate, check for conflicts and persist a PENDING booking."""
    start, end = as_naive_utc(start), as_naive_utc(end)
    validate_booking_window(start, end, now)
    if lock_resource(db, resource_id) is None:
        raise ResourceNotFound("Resource not found")
    try:
        ensure_available(db, resource_id, start, end)
    except SchedulingConflict:
        db.rollback()
        raise
    booking = Booking(
        resource_id=resource_id,
        user_id=requester.id,
        start_datetime=start,
        end_datetime=end,
        purpose=(purpose or "").strip() or None,
        status=BookingStatus.PENDING,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    logger.info("Booking %s created by user %s on resource %s", booking.id, requester.id, resource_id)
    return booking


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def check_permission(booking: Booking, target: BookingStatus, actor: User) -> None:
    if actor.role == RoleEnum.ADMIN:
        return
    if target in ADMIN_ONLY_TARGETS:
        raise PermissionDenied("Only admins can approve or reject bookings")
    if booking.user_id != actor.id:
        raise PermissionDenied("Forbidden")


def apply_transition(booking: Booking, target: BookingStatus, actor: User) -> Booking:
    """Move ``booking`` to ``target`` on behalf of ``actor``.

    Permission is checked before state, so a non-admin approving a booking is
    refused with 403 whatever the booking's current status is. The caller
    commits the session.
    """
    check_permission(booking, target, actor)
    current = BookingStatus(booking.status)
    if not can_transition(current, target):
        detail = _INVALID_STATE_MESSAGES.get(target, f"Cannot change booking status from {current.value} to {target.value}")
        raise InvalidTransition(detail)
    booking.status = target
    if target in ADMIN_ONLY_TARGETS:
        booking.approver_id = actor.id
    logger.info("Booking %s moved %s -> %s by user %s", booking.id, current.value, target.value, actor.id)
    return booking
