"""Book request/response schemas."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bookcatalog.core.isbn import is_valid_isbn
from bookcatalog.models.book import AUTHOR_MAX_LEN, MAX_PAGES, MIN_PAGES, TITLE_MAX_LEN


def _check_isbn(value: str | None) -> str | None:
    if value and not is_valid_isbn(value):
        raise ValueError("must be a valid ISBN-10 or ISBN-13")
    return value


class BookCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=TITLE_MAX_LEN)
    author: str = Field(min_length=1, max_length=AUTHOR_MAX_LEN)
    published: date
    isbn: str = Field(min_length=1)
    pages: int = Field(ge=MIN_PAGES, le=MAX_PAGES)

    check_isbn = field_validator("isbn")(_check_isbn)


class BookUpdateRequest(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    title: str | None = Field(None, max_length=TITLE_MAX_LEN)
    author: str | None = Field(None, max_length=AUTHOR_MAX_LEN)
    published: date | None = None
    isbn: str | None = None
    pages: int | None = None

    check_isbn = field_validator("isbn")(_check_isbn)


class BookResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    author: str
    published: date
    isbn: str
    pages: int
    created_at: datetime
    updated_at: datetime


class BookListResponse(BaseModel):
    data: list[BookResponse]
    page: int
    limit: int
    total: int


class ErrorResponse(BaseModel):
    error: str
    detail: str
