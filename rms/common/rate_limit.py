"""Per-caller request throttling with SlowAPI.

Authenticated callers are throttled per user id taken from their token, so
several users behind one NAT do not share a bucket. Anonymous callers fall
back to their remote address.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .auth import decode_token
from .config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


def _request_token(request: Request) -> str | None:
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        return token
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


def rate_limit_key(request: Request) -> str:
    token = _request_token(request)
    if token:
        try:
            subject = decode_token(token).get("sub")
        except HTTPException:
            subject = None
        if subject:
            return f"user:{subject}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[settings.default_rate_limit],
    enabled=settings.rate_limiting_enabled,
)


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit %s hit by %s on %s", exc.detail, rate_limit_key(request), request.url.path)
    return JSONResponse(
        status_code=429,
        content={"detail": f"Too many requests: {exc.detail}"},
        headers={"Retry-After": str(exc.limit.limit.get_expiry())},
    )


def apply_rate_limiter(app: FastAPI) -> None:
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
