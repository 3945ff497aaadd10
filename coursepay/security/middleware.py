"""Security middleware for FastAPI: body size limit and rate limiting.

Middleware ordering (outermost first):
1. Body size limit -- reject oversize deliveries before reading them
2. Rate limiting -- reject floods before signature verification
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Trusted proxy CIDRs -- only trust X-Forwarded-For when set
_TRUSTED_PROXIES = os.environ.get("TRUSTED_PROXIES", "")


def _get_client_ip(request: Request) -> str:
    """Extract client IP, respecting TRUSTED_PROXIES config."""
    if _TRUSTED_PROXIES:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return get_remote_address(request)


class BodySizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared Content-Length exceeds max_bytes."""

    def __init__(self, app, max_bytes: int) -> None:
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                too_large = int(content_length) > self.max_bytes
            except ValueError:
                return JSONResponse({"error": "Invalid Content-Length"}, status_code=400)
            if too_large:
                logger.warning("Rejected oversize request: %s bytes on %s", content_length, request.url.path)
                return JSONResponse({"error": "Payload too large"}, status_code=413)
        return await call_next(request)


def _rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Handle rate limit exceeded errors."""
    retry_after = getattr(exc, "retry_after", 60)
    return JSONResponse(
        {"error": "Rate limit exceeded", "retry_after": retry_after},
        status_code=429,
        headers={"Retry-After": str(retry_after)},
    )


def install_security_middleware(app: FastAPI, *, rate_limit: str, max_body_bytes: int) -> Limiter:
    """Install all security middleware on the FastAPI app.

    Middleware is added in reverse order (last added = outermost = runs first).
    """
    # 2. Rate limiting (per client IP, applied to every route)
    limiter = Limiter(key_func=_get_client_ip, default_limits=[rate_limit])
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # 1. Body size limit (outermost)
    app.add_middleware(BodySizeLimitMiddleware, max_bytes=max_body_bytes)
    return limiter
