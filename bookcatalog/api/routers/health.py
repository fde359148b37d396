"""Health router: liveness plus a storage round-trip."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from bookcatalog.api.deps import get_book_service, get_request_context
from bookcatalog.core.context import RequestContext
from bookcatalog.services import ServiceError
from bookcatalog.services.book_service import BookService

router = APIRouter()


@router.get("/health")
async def health(
    ctx: RequestContext = Depends(get_request_context),
    svc: BookService = Depends(get_book_service),
) -> JSONResponse:
    try:
        await svc.ping(ctx)
    except ServiceError as exc:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "error": exc.kind},
        )
    return JSONResponse({"status": "ok"})
