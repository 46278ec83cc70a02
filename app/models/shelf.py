"""
Shelf Models

User-curated shelves and the books placed on them. Shelving a book counts
as an interaction: it joins the user's seed set and is never recommended
back to them.
"""

from datetime import UTC, datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


class Shelf(Base):
    """A named shelf owned by one user. Table: shelves"""

    __tablename__ = "shelves"

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    items: Mapped[list["ShelfItem"]] = relationship(
        "ShelfItem",
        back_populates="shelf",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"Shelf(id={self.id}, user_id={self.user_id}, name='{self.name}')"


class ShelfItem(Base):
    """A book on a shelf. Table: shelf_items"""

    __tablename__ = "shelf_items"

    id: Mapped[int] = mapped_column(primary_key=True)

    shelf_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("shelves.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    shelf: Mapped[Shelf] = relationship("Shelf", back_populates="items")

    # Prevent duplicate books inside the same shelf
    __table_args__ = (
        UniqueConstraint("shelf_id", "book_id", name="uq_shelf_item_book"),
    )
