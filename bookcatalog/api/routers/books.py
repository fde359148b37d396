"""Books router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response

from bookcatalog.api.deps import get_book_service, get_request_context
from bookcatalog.api.schemas.book import (
    BookCreateRequest,
    BookListResponse,
    BookResponse,
    BookUpdateRequest,
    ErrorResponse,
)
from bookcatalog.core.context import RequestContext
from bookcatalog.models.book import Book
from bookcatalog.services.book_service import BookCreate, BookService, BookUpdate

router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    504: {"model": ErrorResponse},
}


def _lenient_int(raw: str | None) -> int | None:
    """Parse a query value; garbage falls back to the default (None)."""
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def _etag(book: Book) -> str:
    return f'"{book.id}-{int(book.updated_at.timestamp())}"'


@router.post("", status_code=201, response_model=BookResponse, responses=_ERRORS)
async def create_book(
    body: BookCreateRequest,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    svc: BookService = Depends(get_book_service),
) -> BookResponse:
    book = await svc.create_book(ctx, BookCreate(**body.model_dump()))
    response.headers["Cache-Control"] = "no-store"
    return BookResponse.model_validate(book)


@router.get("", response_model=BookListResponse, responses=_ERRORS)
async def list_books(
    response: Response,
    page: str | None = Query(None),
    limit: str | None = Query(None),
    ctx: RequestContext = Depends(get_request_context),
    svc: BookService = Depends(get_book_service),
) -> BookListResponse:
    result = await svc.list_books(ctx, _lenient_int(page), _lenient_int(limit))
    response.headers["Cache-Control"] = "max-age=60, public"
    return BookListResponse(
        data=[BookResponse.model_validate(book) for book in result.data],
        page=result.page,
        limit=result.page_size,
        total=result.total,
    )


@router.get("/{book_id}", response_model=BookResponse, responses=_ERRORS)
async def get_book(
    book_id: int,
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
    svc: BookService = Depends(get_book_service),
) -> BookResponse:
    book = await svc.get_by_id(ctx, book_id)
    response.headers["Cache-Control"] = "max-age=3600, public"
    response.headers["ETag"] = _etag(book)
    return BookResponse.model_validate(book)


@router.put("/{book_id}", response_model=BookResponse, responses=_ERRORS)
async def update_book(
    book_id: int,
    body: BookUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
    svc: BookService = Depends(get_book_service),
) -> BookResponse:
    book = await svc.update_book(ctx, book_id, BookUpdate(**body.model_dump()))
    return BookResponse.model_validate(book)


@router.delete("/{book_id}", status_code=204, response_class=Response, responses=_ERRORS)
async def delete_book(
    book_id: int,
    ctx: RequestContext = Depends(get_request_context),
    svc: BookService = Depends(get_book_service),
) -> Response:
    await svc.delete_book(ctx, book_id)
    return Response(status_code=204)
