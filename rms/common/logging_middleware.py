"""Audit trail of every HTTP request, one file per service."""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from time import perf_counter

from fastapi import FastAPI, Request

from .config import get_settings

settings = get_settings()

PROCESS_TIME_HEADER = "X-Process-Time-Ms"


def audit_logger(service_name: str) -> logging.Logger:
    """Return the ``audit.<service>`` logger, attaching its file handler once."""
    logger = logging.getLogger(f"audit.{service_name}")
    if logger.handlers:
        return logger

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(log_dir / f"{service_name}.log", maxBytes=5_000_000, backupCount=3)
    handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)
    return logger


def _target(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def add_audit_middleware(app: FastAPI, service_name: str) -> None:
    logger = audit_logger(service_name)

    @app.middleware("http")
    async def audit(request: Request, call_next):  # type: ignore[override]
        start = perf_counter()
        client = request.client.host if request.client else "unknown"
        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "%s %s | status=500 | client=%s | duration=%.2fms",
                request.method,
                _target(request),
                client,
                (perf_counter() - start) * 1000,
            )
            raise
        duration_ms = (perf_counter() - start) * 1000
        response.headers[PROCESS_TIME_HEADER] = f"{duration_ms:.2f}"
        logger.log(
            logging.WARNING if response.status_code >= 500 else logging.INFO,
            "%s %s | status=%s | client=%s | duration=%.2fms",
            request.method,
            _target(request),
            response.status_code,
            client,
            duration_ms,
        )
        return response
