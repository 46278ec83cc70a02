"""
Book Model

The catalog entry every feed candidate points at.

This file also contains the association tables for many-to-many relationships:
- book_authors: Links books to authors
- book_genres: Links books to genres

Identity
========
A book is identified by its catalog id. Books imported from an external
catalog (e.g. Open Library) also carry external_id, which the feed engine
uses as the second choice when deduplicating candidates.
"""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.author import Author
    from app.models.genre import Genre


# =============================================================================
# Association Tables
# =============================================================================

book_authors = Table(
    "book_authors",
    Base.metadata,
    Column(
        "book_id",
        Integer,
        ForeignKey("books.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "author_id",
        Integer,
        ForeignKey("authors.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    comment="Association table linking books to their authors",
)

book_genres = Table(
    "book_genres",
    Base.metadata,
    Column(
        "book_id",
        Integer,
        ForeignKey("books.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "genre_id",
        Integer,
        ForeignKey("genres.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    comment="Association table linking books to their genres",
)


class Book(Base):
    """
    Book model representing catalog entries.

    Table: books

    Fields:
    - title: Book title (required)
    - external_id: Identifier in the upstream catalog (unique, optional)
    - cover_url: Cover image
    - average_rating: Denormalized mean review rating (1-5)
    - review_count: Denormalized number of ratings ("rating volume")

    Relationships:
    - authors: Many-to-Many, ordered by author id so the first author is stable
    - genres: Many-to-Many

    Example:
        book = Book(
            title="1984",
            external_id="OL1168083W",
            average_rating=Decimal("4.50"),
            review_count=100,
        )
    """

    __tablename__ = "books"

    id: Mapped[int] = mapped_column(primary_key=True)

    title: Mapped[str] = mapped_column(
        String(500),
        index=True,
        nullable=False,
        comment="Book title"
    )

    external_id: Mapped[str | None] = mapped_column(
        String(100),
        unique=True,
        index=True,
        nullable=True,
        comment="Identifier in the upstream catalog"
    )

    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    cover_url: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="Cover image URL"
    )

    # Numeric(3, 2): 0.00 - 5.00
    average_rating: Mapped[Decimal | None] = mapped_column(
        Numeric(3, 2),
        index=True,
        nullable=True,
        comment="Mean review rating"
    )

    review_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Number of ratings received"
    )

    # -------------------------------------------------------------------------
    # Timestamps
    # -------------------------------------------------------------------------
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # -------------------------------------------------------------------------
    # Relationships
    # -------------------------------------------------------------------------
    authors: Mapped[list["Author"]] = relationship(
        "Author",
        secondary=book_authors,
        back_populates="books",
        order_by="Author.id",
    )

    genres: Mapped[list["Genre"]] = relationship(
        "Genre",
        secondary=book_genres,
        back_populates="books",
    )

    def __repr__(self) -> str:
        return f"Book(id={self.id}, title='{self.title}', external_id='{self.external_id}')"
