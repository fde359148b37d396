"""BookRepository — storage contract shared by the SQL and in-memory DAOs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, TypeVar

from bookcatalog.core.context import RequestContext
from bookcatalog.models.book import Book

T = TypeVar("T")

PAGE_MIN = 1
PAGE_SIZE_MIN = 1
PAGE_SIZE_MAX = 100
PAGE_SIZE_DEFAULT = 20


@dataclass
class Page(Generic[T]):
    """Offset-paginated result set."""

    data: list[T]
    total: int
    page: int
    page_size: int


def clamp_page(page: int | None) -> int:
    if page is None:
        return PAGE_MIN
    return max(PAGE_MIN, page)


def clamp_page_size(page_size: int | None) -> int:
    if page_size is None:
        return PAGE_SIZE_DEFAULT
    return max(PAGE_SIZE_MIN, min(page_size, PAGE_SIZE_MAX))


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size


class BookRepository(ABC):
    """Persistence for :class:`Book` rows.

    Every read filters on ``deleted_at IS NULL``; no method ever returns a
    soft-deleted row. Implementations raise only
    :mod:`bookcatalog.dao.errors` exceptions.
    """

    @abstractmethod
    async def create(self, ctx: RequestContext, book: Book) -> Book:
        """Insert *book*; populate ``id``, ``created_at``, ``updated_at``."""

    @abstractmethod
    async def get_by_id(self, ctx: RequestContext, book_id: int) -> Book:
        """Return the live row, or raise ``BookNotFoundError``."""

    @abstractmethod
    async def fetch_all(self, ctx: RequestContext, page: int, page_size: int) -> Page[Book]:
        """Return one page of live rows, newest first, plus the live count.

        *page* and *page_size* must already be clamped by the caller.
        """

    @abstractmethod
    async def update(self, ctx: RequestContext, book: Book) -> Book:
        """Overwrite all mutable columns of the live row ``book.id``."""

    @abstractmethod
    async def delete(self, ctx: RequestContext, book_id: int) -> None:
        """Soft-delete the live row, or raise ``BookNotFoundError``."""

    @abstractmethod
    async def ping(self, ctx: RequestContext) -> None:
        """Raise if the storage engine is unreachable."""
