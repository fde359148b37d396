"""InMemoryBookDAO — dict-backed repository for tests and local runs."""

from __future__ import annotations

import itertools
from datetime import datetime, timezone

import structlog

from bookcatalog.core.context import RequestContext
from bookcatalog.dao.base import BookRepository, Page, page_offset
from bookcatalog.dao.errors import (
    BookNotFoundError,
    DuplicateISBNError,
    InvalidBookDataError,
    StorageTimeoutError,
)
from bookcatalog.models.book import ID_MAX, MIN_PAGES, MUTABLE_FIELDS, Book


def _copy(book: Book) -> Book:
    return Book(**book.column_values())


class InMemoryBookDAO(BookRepository):
    """Same contract as :class:`~bookcatalog.dao.book_dao.BookDAO` without a database.

    Rows go in and out as copies, so callers never hold a reference to the
    stored object. Operations contain no ``await`` between check and write,
    which keeps them atomic on a single event loop.
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._rows: dict[int, Book] = {}
        self._ids = itertools.count(1)
        self._log = logger

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    @staticmethod
    def _check_deadline(ctx: RequestContext, op_name: str) -> None:
        if ctx.expired:
            raise StorageTimeoutError(f"{op_name}: deadline exceeded")

    def _live(self, book_id: int) -> Book | None:
        if book_id > ID_MAX:
            return None
        row = self._rows.get(book_id)
        if row is None or row.deleted_at is not None:
            return None
        return row

    def _check_row(self, book: Book, *, exclude_id: int | None = None) -> None:
        for name in MUTABLE_FIELDS:
            if getattr(book, name) is None:
                raise InvalidBookDataError(f"invalid book data: {name} is required")
        if book.pages < MIN_PAGES:
            raise InvalidBookDataError("invalid book data")
        for row in self._rows.values():
            if row.deleted_at is None and row.isbn == book.isbn and row.id != exclude_id:
                raise DuplicateISBNError("isbn already exists")

    # ── read ──────────────────────────────────────────────────────────────

    async def get_by_id(self, ctx: RequestContext, book_id: int) -> Book:
        self._check_deadline(ctx, "get_by_id")
        row = self._live(book_id)
        if row is None:
            raise BookNotFoundError(f"book {book_id} not found")
        return _copy(row)

    async def fetch_all(self, ctx: RequestContext, page: int, page_size: int) -> Page[Book]:
        self._check_deadline(ctx, "fetch_all")
        live = [row for row in self._rows.values() if row.deleted_at is None]
        live.sort(key=lambda row: (row.created_at, row.id), reverse=True)
        start = page_offset(page, page_size)
        return Page(
            data=[_copy(row) for row in live[start : start + page_size]],
            total=len(live),
            page=page,
            page_size=page_size,
        )

    async def ping(self, ctx: RequestContext) -> None:
        self._check_deadline(ctx, "ping")

    # ── write ─────────────────────────────────────────────────────────────

    async def create(self, ctx: RequestContext, book: Book) -> Book:
        self._check_deadline(ctx, "create")
        self._check_row(book)
        now = self._now()
        book.id = next(self._ids)
        book.created_at = now
        book.updated_at = now
        book.deleted_at = None
        self._rows[book.id] = _copy(book)
        if self._log is not None:
            self._log.debug("memory_dao.inserted", book_id=book.id, trace_id=ctx.trace_id)
        return book

    async def update(self, ctx: RequestContext, book: Book) -> Book:
        self._check_deadline(ctx, "update")
        row = self._live(book.id)
        if row is None:
            raise BookNotFoundError(f"book {book.id} not found")
        self._check_row(book, exclude_id=book.id)
        for name in MUTABLE_FIELDS:
            setattr(row, name, getattr(book, name))
        row.updated_at = max(self._now(), row.created_at)
        book.updated_at = row.updated_at
        return book

    async def delete(self, ctx: RequestContext, book_id: int) -> None:
        self._check_deadline(ctx, "delete")
        row = self._live(book_id)
        if row is None:
            raise BookNotFoundError(f"book {book_id} not found")
        now = self._now()
        row.deleted_at = now
        row.updated_at = now
