"""books table."""

from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import CheckConstraint, Date, DateTime, Index, Integer, String, desc, text
from sqlalchemy.orm import Mapped, mapped_column

from bookcatalog.core.database import Base, TimestampMixin

# Columns the update path is allowed to overwrite.
MUTABLE_FIELDS = ("title", "author", "published", "isbn", "pages")

MIN_PAGES = 5
# Largest value an Integer column holds on PostgreSQL (int4).
INT_COLUMN_MAX = 2**31 - 1
ID_MAX = INT_COLUMN_MAX
MAX_PAGES = INT_COLUMN_MAX
TITLE_MAX_LEN = 200
AUTHOR_MAX_LEN = 100


class Book(TimestampMixin, Base):
    __tablename__ = "books"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(TITLE_MAX_LEN), nullable=False)
    author: Mapped[str] = mapped_column(String(AUTHOR_MAX_LEN), nullable=False)
    published: Mapped[date] = mapped_column(Date, nullable=False)
    isbn: Mapped[str] = mapped_column(String(32), nullable=False)
    pages: Mapped[int] = mapped_column(Integer, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        CheckConstraint(f"pages >= {MIN_PAGES}", name="pages_min"),
        # ISBNs are unique among live rows only; a soft-deleted ISBN can be reused.
        Index(
            "uq_books_isbn_live",
            "isbn",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
            sqlite_where=text("deleted_at IS NULL"),
        ),
        Index("idx_books_created", desc("created_at"), desc("id")),
        {"sqlite_autoincrement": True},
    )

    def column_values(self) -> dict[str, Any]:
        """Plain dict of every mapped column (used to copy detached rows)."""
        return {col.key: getattr(self, col.key) for col in self.__table__.columns}

    def __repr__(self) -> str:
        return f"<Book id={self.id!r} isbn={self.isbn!r} title={self.title!r}>"
