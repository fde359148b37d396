"""Unified error handling — ServiceError + RequestValidationError → JSON."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bookcatalog.services import (
    ConflictError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    RequestTimeoutError,
    ServiceError,
)

_STATUS_MAP: dict[type[ServiceError], int] = {
    InvalidInputError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    RequestTimeoutError: 504,
    InternalError: 500,
}


def status_for(exc: ServiceError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_MAP:
            return _STATUS_MAP[cls]
    return 500


def register_error_handlers(app: FastAPI, logger: structlog.stdlib.BoundLogger) -> None:
    """Register exception handlers on the app."""

    async def _service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        status = status_for(exc)
        fields = {
            "kind": exc.kind,
            "error": str(exc),
            "method": request.method,
            "path": request.url.path,
            "trace_id": getattr(request.state, "request_id", None),
        }
        if status >= 500:
            logger.error("request.failed", **fields)
        else:
            logger.warning("request.rejected", **fields)
        return JSONResponse(status_code=status, content={"error": exc.kind, "detail": str(exc)})

    async def _validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        messages = []
        for err in exc.errors():
            loc = " → ".join(str(part) for part in err["loc"])
            messages.append(f"{loc}: {err['msg']}")
        detail = "; ".join(messages)
        logger.warning(
            "request.invalid",
            path=request.url.path,
            error=detail,
            trace_id=getattr(request.state, "request_id", None),
        )
        return JSONResponse(
            status_code=400,
            content={"error": InvalidInputError.kind, "detail": detail},
        )

    app.add_exception_handler(ServiceError, _service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
