"""Tests for the API layer.

The first group mounts the routers on a bare FastAPI app with the service
mocked out. The second builds the full app over an InMemoryBookDAO.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import pytest
import structlog
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from bookcatalog.api import create_app, deps
from bookcatalog.api.errors import register_error_handlers
from bookcatalog.api.routers import books, health
from bookcatalog.core.config import Settings
from bookcatalog.dao.base import Page
from bookcatalog.dao.memory import InMemoryBookDAO
from bookcatalog.models.book import Book
from bookcatalog.services import (
    ConflictError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    RequestTimeoutError,
)

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

DUNE_JSON = {
    "title": "Dune",
    "author": "Herbert",
    "published": "1965-08-01",
    "isbn": "978-0-441-01359-3",
    "pages": 412,
}


def _book(book_id: int = 1, **overrides) -> Book:
    values = {
        "id": book_id,
        "title": "Dune",
        "author": "Herbert",
        "published": date(1965, 8, 1),
        "isbn": "978-0-441-01359-3",
        "pages": 412,
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return Book(**values)


@pytest.fixture
def mock_svc():
    return AsyncMock()


@pytest.fixture
def app(mock_svc):
    """Routers on a bare app; no lifespan, no middleware."""
    application = FastAPI()
    register_error_handlers(application, structlog.get_logger("bookcatalog.tests"))
    application.include_router(health.router, prefix="/api/v1")
    application.include_router(books.router, prefix="/api/v1/books")
    application.dependency_overrides[deps.get_book_service] = lambda: mock_svc
    return application


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# Books (mocked service)
# ---------------------------------------------------------------------------


class TestCreateBook:
    async def test_created(self, client, mock_svc):
        mock_svc.create_book = AsyncMock(return_value=_book())

        resp = await client.post("/api/v1/books", json=DUNE_JSON)

        assert resp.status_code == 201
        assert resp.headers["cache-control"] == "no-store"
        body = resp.json()
        assert body["id"] == 1
        assert body["published"] == "1965-08-01"
        assert "deleted_at" not in body

        data = mock_svc.create_book.await_args.args[1]
        assert data.title == "Dune"
        assert data.published == date(1965, 8, 1)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"pages": 4},
            {"title": ""},
            {"author": "a" * 101},
            {"published": "1965-13-45"},
            {"isbn": "12345"},
            {"isbn": ""},
        ],
    )
    async def test_invalid_body(self, client, mock_svc, overrides):
        resp = await client.post("/api/v1/books", json={**DUNE_JSON, **overrides})

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"
        mock_svc.create_book.assert_not_called()

    async def test_missing_field(self, client, mock_svc):
        body = dict(DUNE_JSON)
        del body["isbn"]
        resp = await client.post("/api/v1/books", json=body)

        assert resp.status_code == 400
        assert "isbn" in resp.json()["detail"]

    async def test_conflict(self, client, mock_svc):
        mock_svc.create_book = AsyncMock(side_effect=ConflictError("isbn already exists"))

        resp = await client.post("/api/v1/books", json=DUNE_JSON)

        assert resp.status_code == 409
        assert resp.json() == {"error": "conflict", "detail": "isbn already exists"}


class TestGetBook:
    async def test_found(self, client, mock_svc):
        mock_svc.get_by_id = AsyncMock(return_value=_book(7))

        resp = await client.get("/api/v1/books/7")

        assert resp.status_code == 200
        assert resp.json()["id"] == 7
        assert resp.headers["etag"] == f'"7-{int(NOW.timestamp())}"'
        assert resp.headers["cache-control"] == "max-age=3600, public"

    async def test_not_found(self, client, mock_svc):
        mock_svc.get_by_id = AsyncMock(side_effect=NotFoundError("book 7 not found"))

        resp = await client.get("/api/v1/books/7")

        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    async def test_non_integer_id(self, client, mock_svc):
        resp = await client.get("/api/v1/books/abc")

        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"
        mock_svc.get_by_id.assert_not_called()

    async def test_timeout(self, client, mock_svc):
        mock_svc.get_by_id = AsyncMock(side_effect=RequestTimeoutError("deadline exceeded"))

        resp = await client.get("/api/v1/books/1")

        assert resp.status_code == 504
        assert resp.json()["error"] == "timeout"

    async def test_internal(self, client, mock_svc):
        mock_svc.get_by_id = AsyncMock(side_effect=InternalError("database error"))

        resp = await client.get("/api/v1/books/1")

        assert resp.status_code == 500
        assert resp.json()["error"] == "internal"


class TestListBooks:
    async def test_list(self, client, mock_svc):
        mock_svc.list_books = AsyncMock(
            return_value=Page(data=[_book(2), _book(1)], total=2, page=1, page_size=20)
        )

        resp = await client.get("/api/v1/books")

        assert resp.status_code == 200
        assert resp.headers["cache-control"] == "max-age=60, public"
        body = resp.json()
        assert [b["id"] for b in body["data"]] == [2, 1]
        assert (body["page"], body["limit"], body["total"]) == (1, 20, 2)
        mock_svc.list_books.assert_awaited_once()
        assert mock_svc.list_books.await_args.args[1:] == (None, None)

    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ("?page=3&limit=50", (3, 50)),
            ("?page=-1&limit=500", (-1, 500)),
            ("?page=abc&limit=", (None, None)),
            ("?limit=2.5", (None, None)),
        ],
    )
    async def test_query_parsing_is_lenient(self, client, mock_svc, query, expected):
        mock_svc.list_books = AsyncMock(
            return_value=Page(data=[], total=0, page=1, page_size=20)
        )

        resp = await client.get(f"/api/v1/books{query}")

        assert resp.status_code == 200
        assert mock_svc.list_books.await_args.args[1:] == expected


class TestUpdateBook:
    async def test_partial(self, client, mock_svc):
        mock_svc.update_book = AsyncMock(return_value=_book(title="Dune Messiah"))

        resp = await client.put("/api/v1/books/1", json={"title": "Dune Messiah"})

        assert resp.status_code == 200
        assert resp.json()["title"] == "Dune Messiah"
        book_id, data = mock_svc.update_book.await_args.args[1:]
        assert book_id == 1
        assert data.title == "Dune Messiah"
        assert data.isbn is None

    async def test_invalid_isbn(self, client, mock_svc):
        resp = await client.put("/api/v1/books/1", json={"isbn": "0000"})

        assert resp.status_code == 400
        mock_svc.update_book.assert_not_called()

    async def test_service_rejects(self, client, mock_svc):
        mock_svc.update_book = AsyncMock(
            side_effect=InvalidInputError("book must have at least 5 pages")
        )

        resp = await client.put("/api/v1/books/1", json={"pages": 3})

        assert resp.status_code == 400
        assert resp.json()["detail"] == "book must have at least 5 pages"


class TestDeleteBook:
    async def test_deleted(self, client, mock_svc):
        mock_svc.delete_book = AsyncMock(return_value=None)

        resp = await client.delete("/api/v1/books/1")

        assert resp.status_code == 204
        assert resp.content == b""

    async def test_not_found(self, client, mock_svc):
        mock_svc.delete_book = AsyncMock(side_effect=NotFoundError("book 1 not found"))

        resp = await client.delete("/api/v1/books/1")

        assert resp.status_code == 404


class TestHealth:
    async def test_ok(self, client, mock_svc):
        mock_svc.ping = AsyncMock(return_value=None)

        resp = await client.get("/api/v1/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    async def test_unavailable(self, client, mock_svc):
        mock_svc.ping = AsyncMock(side_effect=InternalError("unreachable"))

        resp = await client.get("/api/v1/health")

        assert resp.status_code == 503
        assert resp.json() == {"status": "unavailable", "error": "internal"}


# ---------------------------------------------------------------------------
# Full application over the in-memory repository
# ---------------------------------------------------------------------------


@pytest.fixture
async def live_client():
    application = create_app(
        Settings(log_level="WARNING", rate_limit="1000/minute"), repository=InMemoryBookDAO()
    )
    transport = ASGITransport(app=application)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestFullApp:
    async def test_dune_lifecycle(self, live_client):
        created = await live_client.post("/api/v1/books", json=DUNE_JSON)
        assert created.status_code == 201
        assert created.json()["id"] == 1

        fetched = await live_client.get("/api/v1/books/1")
        assert fetched.status_code == 200
        assert fetched.json() == created.json()
        assert fetched.headers["etag"].startswith('"1-')

        deleted = await live_client.delete("/api/v1/books/1")
        assert deleted.status_code == 204

        gone = await live_client.get("/api/v1/books/1")
        assert gone.status_code == 404
        assert gone.json()["error"] == "not_found"

    async def test_duplicate_then_reuse(self, live_client):
        first = await live_client.post("/api/v1/books", json=DUNE_JSON)
        dup = await live_client.post("/api/v1/books", json=DUNE_JSON)
        assert dup.status_code == 409

        await live_client.delete(f"/api/v1/books/{first.json()['id']}")
        again = await live_client.post("/api/v1/books", json=DUNE_JSON)
        assert again.status_code == 201
        assert again.json()["id"] == 2

    async def test_update_zero_values_keep_fields(self, live_client):
        await live_client.post("/api/v1/books", json=DUNE_JSON)

        resp = await live_client.put(
            "/api/v1/books/1", json={"title": "", "pages": 0, "author": "Frank Herbert"}
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["title"] == "Dune"
        assert body["pages"] == 412
        assert body["author"] == "Frank Herbert"

    async def test_list_clamping(self, live_client):
        await live_client.post("/api/v1/books", json=DUNE_JSON)

        clamped = await live_client.get("/api/v1/books?page=-1&limit=500")
        assert clamped.status_code == 200
        body = clamped.json()
        assert (body["page"], body["limit"], body["total"]) == (1, 100, 1)

        fallback = await live_client.get("/api/v1/books?limit=abc")
        assert fallback.json()["limit"] == 20

    async def test_non_positive_id(self, live_client):
        resp = await live_client.get("/api/v1/books/0")
        assert resp.status_code == 400
        assert resp.json() == {"error": "invalid_input", "detail": "invalid book ID"}

    async def test_request_id_generated(self, live_client):
        resp = await live_client.get("/api/v1/health")
        assert resp.status_code == 200
        uuid.UUID(resp.headers["x-request-id"])

    async def test_request_id_propagated(self, live_client):
        rid = str(uuid.uuid4())
        resp = await live_client.get("/api/v1/books/99", headers={"X-Request-ID": rid})
        assert resp.status_code == 404
        assert resp.headers["x-request-id"] == rid

    async def test_bad_request_id_replaced(self, live_client):
        resp = await live_client.get("/api/v1/health", headers={"X-Request-ID": "not-a-uuid"})
        assert resp.headers["x-request-id"] != "not-a-uuid"

    async def test_id_beyond_storage_range(self, live_client):
        huge = "99999999999999999999"
        assert (await live_client.get(f"/api/v1/books/{huge}")).status_code == 404
        assert (await live_client.delete(f"/api/v1/books/{huge}")).status_code == 404
        resp = await live_client.put(f"/api/v1/books/{huge}", json={"title": "x"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    async def test_pages_beyond_storage_range(self, live_client):
        resp = await live_client.post("/api/v1/books", json={**DUNE_JSON, "pages": 2**63})
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_input"

    async def test_security_headers(self, live_client):
        for resp in (
            await live_client.get("/api/v1/health"),
            await live_client.get("/api/v1/books/99"),
        ):
            assert resp.headers["x-content-type-options"] == "nosniff"
            assert resp.headers["x-frame-options"] == "DENY"
            assert resp.headers["referrer-policy"] == "no-referrer"


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


def _limited_client(rate: str) -> AsyncClient:
    application = create_app(
        Settings(log_level="WARNING", rate_limit=rate), repository=InMemoryBookDAO()
    )
    return AsyncClient(transport=ASGITransport(app=application), base_url="http://test")


class TestRateLimit:
    async def test_excess_requests_rejected(self):
        async with _limited_client("2/minute") as c:
            assert (await c.get("/api/v1/books")).status_code == 200
            assert (await c.get("/api/v1/books")).status_code == 200

            resp = await c.get("/api/v1/books")

        assert resp.status_code == 429
        body = resp.json()
        assert body["error"] == "rate_limited"
        assert "2 per 1 minute" in body["detail"]
        assert int(resp.headers["retry-after"]) > 0
        assert resp.headers["x-content-type-options"] == "nosniff"
        uuid.UUID(resp.headers["x-request-id"])

    async def test_health_exempt(self):
        async with _limited_client("1/minute") as c:
            statuses = [(await c.get("/api/v1/health")).status_code for _ in range(5)]
        assert statuses == [200] * 5

    async def test_limit_shared_across_routes(self):
        async with _limited_client("1/minute") as c:
            assert (await c.post("/api/v1/books", json=DUNE_JSON)).status_code == 201
            assert (await c.get("/api/v1/books/1")).status_code == 429

    async def test_empty_rate_disables(self):
        async with _limited_client("") as c:
            statuses = [(await c.get("/api/v1/books")).status_code for _ in range(20)]
        assert statuses == [200] * 20
