"""Dependency injection — request context and the book service."""

from __future__ import annotations

from fastapi import Request

from bookcatalog.core.context import RequestContext
from bookcatalog.services.book_service import BookService


def get_request_context(request: Request) -> RequestContext:
    """Build the per-request context from the middleware trace id and the
    configured request timeout."""
    trace_id = getattr(request.state, "request_id", None)
    settings = getattr(request.app.state, "settings", None)
    timeout = settings.request_timeout if settings is not None else None
    return RequestContext(trace_id=trace_id, timeout=timeout)


def get_book_service(request: Request) -> BookService:
    service = getattr(request.app.state, "book_service", None)
    if service is None:
        raise RuntimeError("book service is not initialised; the app lifespan has not run")
    return service
