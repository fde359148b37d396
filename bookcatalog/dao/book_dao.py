"""BookDAO — books table operations (SQLAlchemy asyncio)."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from sqlalchemy import exc as sa_exc
from sqlalchemy import func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bookcatalog.core.context import RequestContext
from bookcatalog.dao.base import BookRepository, Page, page_offset
from bookcatalog.dao.errors import (
    BookNotFoundError,
    DuplicateISBNError,
    InvalidBookDataError,
    InvalidReferenceError,
    RepositoryError,
    StorageError,
    StorageTimeoutError,
)
from bookcatalog.models.book import ID_MAX, MUTABLE_FIELDS, Book

_T = TypeVar("_T")

# SQLSTATE (PostgreSQL) and extended result names (SQLite)
_UNIQUE_VIOLATION = frozenset({"23505", "SQLITE_CONSTRAINT_UNIQUE"})
_FOREIGN_KEY_VIOLATION = frozenset({"23503", "SQLITE_CONSTRAINT_FOREIGNKEY"})
_DATA_VIOLATION = frozenset(
    {"23502", "23514", "SQLITE_CONSTRAINT_NOTNULL", "SQLITE_CONSTRAINT_CHECK"}
)
_QUERY_CANCELED = "57014"
_NUMERIC_OUT_OF_RANGE = "22003"

# Isolation for the count + page reads. SQLite transactions are already
# serializable, so only PostgreSQL needs an explicit level.
_SNAPSHOT_ISOLATION = {"postgresql": "REPEATABLE READ"}


def _error_code(exc: sa_exc.DBAPIError) -> str | None:
    """Return the SQLSTATE / SQLite error name behind a wrapped DBAPI error."""
    for source in (exc.orig, getattr(exc.orig, "__cause__", None)):
        for attr in ("pgcode", "sqlstate", "sqlite_errorname"):
            code = getattr(source, attr, None)
            if code:
                return code
    return None


def _translate(exc: sa_exc.SQLAlchemyError) -> RepositoryError:
    if isinstance(exc, sa_exc.TimeoutError):
        return StorageTimeoutError("timed out waiting for a database connection")
    if isinstance(exc, sa_exc.DBAPIError):
        code = _error_code(exc)
        if code in _UNIQUE_VIOLATION:
            return DuplicateISBNError("isbn already exists")
        if code in _FOREIGN_KEY_VIOLATION:
            return InvalidReferenceError(
                "invalid reference: the referenced record does not exist"
            )
        if code in _DATA_VIOLATION:
            return InvalidBookDataError("invalid book data")
        if code == _NUMERIC_OUT_OF_RANGE:
            return InvalidBookDataError("invalid book data: value out of range")
        if code == _QUERY_CANCELED:
            return StorageTimeoutError("statement cancelled by the database")
        if isinstance(exc, sa_exc.DataError):
            # asyncpg rejects out-of-range arguments client-side, without a SQLSTATE
            return InvalidBookDataError("invalid book data")
    return StorageError(f"database error: {type(exc).__name__}")


class BookDAO(BookRepository):
    """SQL-backed repository.

    Each call checks out one session from *session_factory*, runs inside a
    single transaction, and returns the connection to the pool on every exit
    path. Raising inside the ``session.begin()`` block rolls back; leaving it
    normally commits.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        logger: structlog.stdlib.BoundLogger,
    ) -> None:
        self._session_factory = session_factory
        self._log = logger

    async def _run(
        self,
        ctx: RequestContext,
        op_name: str,
        op: Callable[[AsyncSession], Awaitable[_T]],
        *,
        snapshot: bool = False,
    ) -> _T:
        """Run *op* in a fresh transaction until it ends or the context expires."""
        if ctx.expired:
            raise StorageTimeoutError(f"{op_name}: deadline exceeded")

        async def _transaction() -> _T:
            async with self._session_factory() as session:
                async with session.begin():
                    if snapshot:
                        await self._pin_snapshot(session)
                    return await op(session)

        try:
            return await ctx.run(_transaction())
        except RepositoryError:
            raise
        except asyncio.TimeoutError as exc:
            reason = "cancelled" if ctx.cancelled else "deadline exceeded"
            self._log.warning(
                "book_dao.timeout", op=op_name, reason=reason, trace_id=ctx.trace_id
            )
            raise StorageTimeoutError(f"{op_name}: {reason}") from exc
        except sa_exc.SQLAlchemyError as exc:
            err = _translate(exc)
            if isinstance(err, (StorageError, StorageTimeoutError)):
                self._log.error(
                    "book_dao.storage_error",
                    op=op_name,
                    error=str(exc),
                    trace_id=ctx.trace_id,
                )
            raise err from exc
        except OverflowError as exc:
            # the driver refuses integers wider than the column
            raise InvalidBookDataError("invalid book data: value out of range") from exc
        except OSError as exc:
            self._log.error(
                "book_dao.unreachable", op=op_name, error=str(exc), trace_id=ctx.trace_id
            )
            raise StorageError(f"{op_name}: database unreachable") from exc

    @staticmethod
    async def _pin_snapshot(session: AsyncSession) -> None:
        level = _SNAPSHOT_ISOLATION.get(session.get_bind().dialect.name)
        if level is not None:
            # must be the first thing the transaction does
            await session.connection(execution_options={"isolation_level": level})

    # ── read ──────────────────────────────────────────────────────────────

    async def get_by_id(self, ctx: RequestContext, book_id: int) -> Book:
        if book_id > ID_MAX:
            raise BookNotFoundError(f"book {book_id} not found")

        async def _get(session: AsyncSession) -> Book:
            stmt = select(Book).where(Book.id == book_id, Book.deleted_at.is_(None))
            result = await session.execute(stmt)
            book = result.scalars().first()
            if book is None:
                raise BookNotFoundError(f"book {book_id} not found")
            return book

        return await self._run(ctx, "get_by_id", _get)

    async def fetch_all(self, ctx: RequestContext, page: int, page_size: int) -> Page[Book]:
        """Count + page of live rows, both read from the same snapshot."""
        live = Book.deleted_at.is_(None)

        async def _fetch(session: AsyncSession) -> Page[Book]:
            count_result = await session.execute(
                select(func.count()).select_from(Book).where(live)
            )
            total = count_result.scalar_one()

            stmt = (
                select(Book)
                .where(live)
                .order_by(Book.created_at.desc(), Book.id.desc())
                .limit(page_size)
                .offset(page_offset(page, page_size))
            )
            result = await session.execute(stmt)
            return Page(
                data=list(result.scalars().all()),
                total=total,
                page=page,
                page_size=page_size,
            )

        return await self._run(ctx, "fetch_all", _fetch, snapshot=True)

    async def ping(self, ctx: RequestContext) -> None:
        async def _ping(session: AsyncSession) -> None:
            result = await session.execute(text("SELECT 1"))
            value = result.scalar_one()
            if value != 1:
                raise StorageError(f"unexpected health check result: {value!r}")

        await self._run(ctx, "ping", _ping)

    # ── write ─────────────────────────────────────────────────────────────

    async def create(self, ctx: RequestContext, book: Book) -> Book:
        """Insert *book* and load its server-generated columns."""

        async def _insert(session: AsyncSession) -> Book:
            session.add(book)
            await session.flush()
            await session.refresh(book)
            return book

        return await self._run(ctx, "create", _insert)

    async def update(self, ctx: RequestContext, book: Book) -> Book:
        """Full-row update of the mutable columns; bumps ``updated_at``."""
        if book.id > ID_MAX:
            raise BookNotFoundError(f"book {book.id} not found")
        values = {name: getattr(book, name) for name in MUTABLE_FIELDS}

        async def _update(session: AsyncSession) -> Book:
            stmt = (
                update(Book)
                .where(Book.id == book.id, Book.deleted_at.is_(None))
                .values(**values, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise BookNotFoundError(f"book {book.id} not found")

            refreshed = await session.execute(
                select(Book.updated_at).where(Book.id == book.id)
            )
            book.updated_at = refreshed.scalar_one()
            return book

        return await self._run(ctx, "update", _update)

    async def delete(self, ctx: RequestContext, book_id: int) -> None:
        """Soft delete: commits only when exactly one live row was marked."""
        if book_id > ID_MAX:
            raise BookNotFoundError(f"book {book_id} not found")

        async def _delete(session: AsyncSession) -> None:
            stmt = (
                update(Book)
                .where(Book.id == book_id, Book.deleted_at.is_(None))
                .values(deleted_at=func.now(), updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise BookNotFoundError(f"book {book_id} not found")
            if result.rowcount != 1:
                raise StorageError(f"delete matched {result.rowcount} rows for id {book_id}")

        await self._run(ctx, "delete", _delete)
