"""BookService — validation, merge rules and error mapping for the catalog."""

from __future__ import annotations

import re
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable

import structlog

from bookcatalog.core.context import RequestContext
from bookcatalog.core.isbn import is_valid_isbn
from bookcatalog.dao.base import BookRepository, Page, clamp_page, clamp_page_size
from bookcatalog.dao.errors import (
    BookNotFoundError,
    DuplicateISBNError,
    InvalidBookDataError,
    InvalidReferenceError,
    RepositoryError,
    StorageTimeoutError,
)
from bookcatalog.models.book import (
    AUTHOR_MAX_LEN,
    MAX_PAGES,
    MIN_PAGES,
    MUTABLE_FIELDS,
    TITLE_MAX_LEN,
    Book,
)
from bookcatalog.services import (
    ConflictError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    RequestTimeoutError,
    ServiceError,
)

_ERROR_MAP: dict[type[RepositoryError], type[ServiceError]] = {
    BookNotFoundError: NotFoundError,
    DuplicateISBNError: ConflictError,
    InvalidReferenceError: InvalidInputError,
    InvalidBookDataError: InvalidInputError,
    StorageTimeoutError: RequestTimeoutError,
}

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class BookCreate:
    """Input for :meth:`BookService.create_book`."""

    title: str
    author: str
    published: date | str
    isbn: str
    pages: int


@dataclass
class BookUpdate:
    """Input for :meth:`BookService.update_book`.

    ``None``, ``""`` and ``0`` all mean "leave unchanged", so a field cannot
    be blanked through an update.
    """

    title: str | None = None
    author: str | None = None
    published: date | str | None = None
    isbn: str | None = None
    pages: int | None = None

    def supplied(self) -> dict[str, Any]:
        """Return the fields that carry a non-zero value."""
        fields = {}
        for name in MUTABLE_FIELDS:
            value = getattr(self, name)
            if value is None or value == "" or value == 0:
                continue
            fields[name] = value
        return fields


# ── field validation ─────────────────────────────────────────────────────


def _clean_text(name: str, value: Any, max_len: int) -> str:
    if not isinstance(value, str):
        raise InvalidInputError(f"{name} must be a string")
    text = value.strip()
    if not text:
        raise InvalidInputError(f"{name} is required")
    if len(text) > max_len:
        raise InvalidInputError(f"{name} too long (max {max_len} characters)")
    return text


def _clean_title(value: Any) -> str:
    return _clean_text("title", value, TITLE_MAX_LEN)


def _clean_author(value: Any) -> str:
    return _clean_text("author", value, AUTHOR_MAX_LEN)


def _clean_published(value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str) and _ISO_DATE.match(value.strip()):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise InvalidInputError("published must be a date in YYYY-MM-DD format")


def _clean_isbn(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError("isbn is required")
    isbn = value.strip()
    if not is_valid_isbn(isbn):
        raise InvalidInputError(f"invalid isbn: {isbn!r}")
    return isbn


def _clean_pages(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError("pages must be an integer")
    if value < MIN_PAGES:
        raise InvalidInputError(f"book must have at least {MIN_PAGES} pages")
    if value > MAX_PAGES:
        raise InvalidInputError(f"pages out of range (max {MAX_PAGES})")
    return value


_CLEANERS: dict[str, Callable[[Any], Any]] = {
    "title": _clean_title,
    "author": _clean_author,
    "published": _clean_published,
    "isbn": _clean_isbn,
    "pages": _clean_pages,
}


def _require_id(book_id: Any) -> None:
    if isinstance(book_id, bool) or not isinstance(book_id, int) or book_id <= 0:
        raise InvalidInputError("invalid book ID")


def _translate(exc: RepositoryError) -> ServiceError:
    for cls in type(exc).__mro__:
        if cls in _ERROR_MAP:
            return _ERROR_MAP[cls](str(exc))
    return InternalError(str(exc))


class BookService:
    """Stateless service for book CRUD.

    All input is validated before the repository is called, so a rejected
    request never has side effects. Repository exceptions never escape:
    they are re-raised as :class:`ServiceError` subclasses.
    """

    def __init__(
        self,
        repository: BookRepository,
        logger: structlog.stdlib.BoundLogger,
    ) -> None:
        self._repo = repository
        self._log = logger

    @contextmanager
    def _repository_errors(self, ctx: RequestContext, op_name: str) -> Iterator[None]:
        try:
            yield
        except RepositoryError as exc:
            err = _translate(exc)
            if isinstance(err, InternalError):
                self._log.error(
                    "book.storage_failed", op=op_name, error=str(exc), trace_id=ctx.trace_id
                )
            elif isinstance(err, RequestTimeoutError):
                self._log.warning("book.timeout", op=op_name, trace_id=ctx.trace_id)
            raise err from exc

    async def create_book(self, ctx: RequestContext, data: BookCreate) -> Book:
        """Validate and insert a new book.

        Raises :class:`InvalidInputError` for bad fields (including fewer
        than five pages) and :class:`ConflictError` for a live duplicate ISBN.
        """
        values = {name: _CLEANERS[name](getattr(data, name)) for name in MUTABLE_FIELDS}
        with self._repository_errors(ctx, "create_book"):
            book = await self._repo.create(ctx, Book(**values))

        self._log.info("book.created", book_id=book.id, isbn=book.isbn, trace_id=ctx.trace_id)
        return book

    async def get_by_id(self, ctx: RequestContext, book_id: int) -> Book:
        """Return the live book; raises :class:`NotFoundError` otherwise."""
        _require_id(book_id)
        with self._repository_errors(ctx, "get_by_id"):
            return await self._repo.get_by_id(ctx, book_id)

    async def list_books(
        self,
        ctx: RequestContext,
        page: int | None = None,
        page_size: int | None = None,
    ) -> Page[Book]:
        """Return one page of live books, newest first.

        Out-of-range paging values are clamped, never rejected.
        """
        page = clamp_page(page)
        page_size = clamp_page_size(page_size)
        with self._repository_errors(ctx, "list_books"):
            return await self._repo.fetch_all(ctx, page, page_size)

    async def update_book(self, ctx: RequestContext, book_id: int, data: BookUpdate) -> Book:
        """Merge the supplied fields of *data* over the stored book."""
        _require_id(book_id)
        changes = {name: _CLEANERS[name](value) for name, value in data.supplied().items()}

        with self._repository_errors(ctx, "update_book"):
            book = await self._repo.get_by_id(ctx, book_id)
            for name, value in changes.items():
                setattr(book, name, value)
            book = await self._repo.update(ctx, book)

        self._log.info(
            "book.updated", book_id=book_id, fields=sorted(changes), trace_id=ctx.trace_id
        )
        return book

    async def delete_book(self, ctx: RequestContext, book_id: int) -> None:
        """Soft-delete a live book. Deleting twice raises :class:`NotFoundError`."""
        _require_id(book_id)
        with self._repository_errors(ctx, "delete_book"):
            await self._repo.get_by_id(ctx, book_id)
            await self._repo.delete(ctx, book_id)

        self._log.info("book.deleted", book_id=book_id, trace_id=ctx.trace_id)

    async def ping(self, ctx: RequestContext) -> None:
        with self._repository_errors(ctx, "ping"):
            await self._repo.ping(ctx)
