"""Data access — the only layer that talks to the storage engine."""

from bookcatalog.dao.base import BookRepository, Page
from bookcatalog.dao.book_dao import BookDAO
from bookcatalog.dao.memory import InMemoryBookDAO

__all__ = ["BookDAO", "BookRepository", "InMemoryBookDAO", "Page"]
