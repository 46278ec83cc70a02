"""
Reading Model

A user's reading-status entry for a book (to-read, reading, finished).

The feed engine treats a reading entry as a weaker intent signal than a
review, and counts started_at inside the trending window as a "reading start".
"""

from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ReadingStatus(StrEnum):
    """Reading states a user can put a book in."""

    TO_READ = "to-read"
    READING = "reading"
    FINISHED = "finished"


class Reading(Base):
    """
    Reading-status entry.

    Table: readings

    One row per user and book; status moves forward as the user reads.
    """

    __tablename__ = "readings"

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=ReadingStatus.TO_READ.value,
        nullable=False,
    )

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_reading_user_book"),
    )

    def __repr__(self) -> str:
        return f"<Reading(user_id={self.user_id}, book_id={self.book_id}, status='{self.status}')>"
