"""
Activity Model

Append-only log of things users did. The social feed source reads it to
show what followed accounts have been reviewing, reading and shelving.

type/action pairs the feed understands:
- review / created
- reading / started
- reading / finished
- shelf / added
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.models.book import Book
from app.models.user import User


class ActivityType(StrEnum):
    READING = "reading"
    REVIEW = "review"
    SHELF = "shelf"
    FOLLOW = "follow"
    COMMENT = "comment"
    OTHER = "other"


class ActivityAction(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    STARTED = "started"
    FINISHED = "finished"
    ADDED = "added"
    REMOVED = "removed"


class Activity(Base):
    """
    Activity log entry.

    Table: activities

    meta holds action-specific details, e.g. {"rating": 4} for reviews.
    """

    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(primary_key=True)

    actor_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)

    book_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="SET NULL"),
        nullable=True,
    )

    message: Mapped[str | None] = mapped_column(String(280), nullable=True)
    meta: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    actor: Mapped[User] = relationship("User")
    book: Mapped[Book | None] = relationship("Book")

    __table_args__ = (
        Index("ix_activities_actor_created", "actor_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Activity(actor_id={self.actor_id}, {self.type}/{self.action}, book_id={self.book_id})>"
