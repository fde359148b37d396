"""SQLAlchemy ORM models — one file per table."""

from bookcatalog.models.book import Book

__all__ = [
    "Book",
]
