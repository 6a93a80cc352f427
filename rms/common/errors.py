"""Domain errors raised by the booking rules and their HTTP translation."""
from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """Base class for rule violations that map onto a 4xx response."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class BookingValidationError(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST


class SchedulingConflict(BookingError):
    status_code = status.HTTP_409_CONFLICT


class InvalidTransition(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDenied(BookingError):
    status_code = status.HTTP_403_FORBIDDEN


class ResourceNotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    logger.info("%s %s rejected: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach the domain and catch-all exception handlers to an app."""

    app.add_exception_handler(BookingError, booking_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
