"""Book catalog REST API — FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from bookcatalog import __version__
from bookcatalog.api.errors import register_error_handlers
from bookcatalog.api.middleware.request_id import RequestIDMiddleware
from bookcatalog.api.middleware.security_headers import SecurityHeadersMiddleware
from bookcatalog.api.ratelimit import register_rate_limiting
from bookcatalog.api.routers import books, health
from bookcatalog.core.config import Settings
from bookcatalog.core.database import create_engine, create_schema, create_session_factory
from bookcatalog.core.logging import get_logger, setup_logging
from bookcatalog.dao.base import BookRepository
from bookcatalog.dao.book_dao import BookDAO
from bookcatalog.services.book_service import BookService


def create_app(
    settings: Settings | None = None,
    repository: BookRepository | None = None,
) -> FastAPI:
    """Build and return the FastAPI application.

    With no *repository* the lifespan opens a pooled engine from *settings*
    and wires a SQL :class:`BookDAO`. Passing a repository (for example an
    ``InMemoryBookDAO``) wires the service immediately and skips the engine.
    """
    if settings is None:
        settings = Settings.from_env()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("bookcatalog")

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Startup: open the engine and wire the service. Shutdown: dispose."""
        engine = None
        if repository is None:
            engine = create_engine(settings)
            if settings.create_schema:
                await create_schema(engine)
            dao = BookDAO(create_session_factory(engine), logger.bind(component="book_dao"))
            app.state.book_service = BookService(dao, logger.bind(component="book_service"))
        logger.info("app.started", version=__version__)
        try:
            yield
        finally:
            if engine is not None:
                await engine.dispose()
            logger.info("app.stopped")

    app = FastAPI(
        title="Book Catalog",
        version=__version__,
        docs_url="/api/v1/docs",
        openapi_url="/api/v1/openapi.json",
        lifespan=_lifespan,
    )
    app.state.settings = settings
    if repository is not None:
        app.state.book_service = BookService(repository, logger.bind(component="book_service"))

    register_error_handlers(app, logger.bind(component="api"))

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_rate_limiting(app, settings, logger.bind(component="ratelimit"))
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware, logger=logger.bind(component="http"))

    app.include_router(health.router, prefix="/api/v1", tags=["ops"])
    app.include_router(books.router, prefix="/api/v1/books", tags=["books"])

    return app
