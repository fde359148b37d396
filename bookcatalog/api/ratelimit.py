"""Per-client rate limiting (slowapi).

One application-wide bucket per client address; the health check is exempt.
``memory://`` storage counts per process, so several workers multiply the
effective limit. Point ``BOOKCATALOG_RATE_LIMIT_STORAGE_URI`` at Redis to share
counters.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse, Response

from bookcatalog.api.routers import health
from bookcatalog.core.config import Settings


def create_limiter(settings: Settings) -> Limiter:
    """Build the limiter; an empty ``rate_limit`` disables it."""
    limits = [settings.rate_limit] if settings.rate_limit else []
    limiter = Limiter(
        key_func=get_remote_address,
        application_limits=limits,
        storage_uri=settings.rate_limit_storage_uri,
        enabled=bool(limits),
    )
    limiter.exempt(health.health)
    return limiter


def register_rate_limiting(
    app: FastAPI,
    settings: Settings,
    logger: structlog.stdlib.BoundLogger,
) -> None:
    """Attach the limiter, its 429 handler and the checking middleware to *app*."""

    def _rate_limit_exceeded(request: Request, exc: RateLimitExceeded) -> Response:
        logger.warning(
            "request.rate_limited",
            client=get_remote_address(request),
            path=request.url.path,
            limit=exc.detail,
            trace_id=getattr(request.state, "request_id", None),
        )
        return JSONResponse(
            status_code=429,
            content={"error": "rate_limited", "detail": f"rate limit exceeded: {exc.detail}"},
            headers={"Retry-After": str(exc.limit.limit.get_expiry())},
        )

    app.state.limiter = create_limiter(settings)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded)  # type: ignore[arg-type]
    app.add_middleware(SlowAPIMiddleware)
