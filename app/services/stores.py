"""
Collaborator Stores

Read-only access to the data the feed engine consumes but does not own:

- InteractionStore: a user's reviews, reading entries and shelf items, plus
  the windowed aggregates collaborative filtering and trending need
- SocialGraphStore: who follows whom
- ActivityLogStore: what followed accounts have been doing
- CatalogStore: book projections and popularity listings

Each interface is a typing.Protocol with async methods. The SQL
implementations run their (synchronous) SQLAlchemy queries on a worker
thread via asyncio.to_thread(), opening one session per call from the
injected session factory, so the providers can await them concurrently.

Tests substitute in-memory fakes that satisfy the same protocols.
"""

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, TypeVar

from sqlalchemy import desc, func, nulls_last, select
from sqlalchemy.orm import Session, selectinload

from app.models import (
    Activity,
    ActivityAction,
    ActivityType,
    Book,
    Follow,
    Reading,
    Review,
    Shelf,
    ShelfItem,
)
from app.services.candidates import BookRef
from app.utils import as_utc

T = TypeVar("T")


# =============================================================================
# Records
# =============================================================================


@dataclass
class ReviewSignal:
    user_id: int
    book_id: int
    rating: int
    created_at: datetime


@dataclass
class ReadingSignal:
    user_id: int
    book_id: int
    status: str
    updated_at: datetime


@dataclass
class ShelfSignal:
    book_id: int
    created_at: datetime


@dataclass
class ActivityRecord:
    """One activity-log entry joined with its actor's name and book."""

    actor_id: int
    actor_name: str
    type: str
    action: str
    book: BookRef | None
    created_at: datetime
    message: str | None = None
    rating: int | None = None


# =============================================================================
# Interfaces
# =============================================================================


class InteractionStore(Protocol):
    async def find_reviews_by_user(self, user_id: int) -> list[ReviewSignal]: ...

    async def find_reading_by_user(self, user_id: int) -> list[ReadingSignal]: ...

    async def find_shelf_items_by_user(self, user_id: int) -> list[ShelfSignal]: ...

    async def find_reviews_for_books(
        self, book_ids: list[int], since: datetime
    ) -> list[ReviewSignal]: ...

    async def find_reviews_by_users(
        self, user_ids: list[int], since: datetime
    ) -> list[ReviewSignal]: ...

    async def find_reading_by_users(
        self, user_ids: list[int], since: datetime
    ) -> list[ReadingSignal]: ...

    async def count_reviews_by_book(self, since: datetime) -> dict[int, int]: ...

    async def count_reading_starts_by_book(self, since: datetime) -> dict[int, int]: ...


class SocialGraphStore(Protocol):
    async def find_following(self, user_id: int) -> list[int]: ...


class ActivityLogStore(Protocol):
    async def find_recent_activity(
        self,
        actor_ids: list[int],
        types: list[str],
        since: datetime,
        limit: int,
    ) -> list[ActivityRecord]: ...


class CatalogStore(Protocol):
    async def find_books_by_id(self, book_ids: Iterable[int]) -> list[BookRef]: ...

    async def find_top_rated_books(self, limit: int) -> list[BookRef]: ...

    async def find_most_reviewed_books(self, limit: int) -> list[BookRef]: ...

    async def find_books_excluding(
        self, book_ids: Iterable[int], limit: int
    ) -> list[BookRef]: ...


# =============================================================================
# SQLAlchemy Implementations
# =============================================================================


def book_to_ref(book: Book) -> BookRef:
    """Project a Book row (authors and genres loaded) into a BookRef."""
    return BookRef(
        id=book.id,
        title=book.title,
        authors=[a.name for a in book.authors],
        external_id=book.external_id,
        cover_url=book.cover_url,
        avg_rating=float(book.average_rating) if book.average_rating is not None else None,
        genres=[g.name for g in book.genres],
        updated_at=as_utc(book.updated_at or book.created_at),
    )


def _book_query():
    return select(Book).options(selectinload(Book.authors), selectinload(Book.genres))


class _SqlStore:
    """Runs a query function on a worker thread with a fresh session."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def _run_sync(self, query: Callable[[Session], T]) -> T:
        with self._session_factory() as db:
            return query(db)

    async def _run(self, query: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._run_sync, query)


class SqlInteractionStore(_SqlStore):
    """Reviews, readings and shelf items."""

    async def find_reviews_by_user(self, user_id: int) -> list[ReviewSignal]:
        def query(db: Session) -> list[ReviewSignal]:
            rows = db.execute(
                select(Review.user_id, Review.book_id, Review.rating, Review.created_at)
                .where(Review.user_id == user_id)
                .order_by(Review.created_at.desc())
            ).all()
            return [_review_signal(row) for row in rows]

        return await self._run(query)

    async def find_reading_by_user(self, user_id: int) -> list[ReadingSignal]:
        def query(db: Session) -> list[ReadingSignal]:
            rows = db.execute(
                select(Reading.user_id, Reading.book_id, Reading.status, Reading.updated_at)
                .where(Reading.user_id == user_id)
                .order_by(Reading.updated_at.desc())
            ).all()
            return [_reading_signal(row) for row in rows]

        return await self._run(query)

    async def find_shelf_items_by_user(self, user_id: int) -> list[ShelfSignal]:
        def query(db: Session) -> list[ShelfSignal]:
            rows = db.execute(
                select(ShelfItem.book_id, ShelfItem.created_at)
                .join(Shelf, Shelf.id == ShelfItem.shelf_id)
                .where(Shelf.user_id == user_id)
                .order_by(ShelfItem.created_at.desc())
            ).all()
            return [
                ShelfSignal(book_id=book_id, created_at=as_utc(created_at))
                for book_id, created_at in rows
            ]

        return await self._run(query)

    async def find_reviews_for_books(
        self, book_ids: list[int], since: datetime
    ) -> list[ReviewSignal]:
        if not book_ids:
            return []

        def query(db: Session) -> list[ReviewSignal]:
            rows = db.execute(
                select(Review.user_id, Review.book_id, Review.rating, Review.created_at)
                .where(Review.book_id.in_(book_ids))
                .where(Review.created_at >= since)
            ).all()
            return [_review_signal(row) for row in rows]

        return await self._run(query)

    async def find_reviews_by_users(
        self, user_ids: list[int], since: datetime
    ) -> list[ReviewSignal]:
        if not user_ids:
            return []

        def query(db: Session) -> list[ReviewSignal]:
            rows = db.execute(
                select(Review.user_id, Review.book_id, Review.rating, Review.created_at)
                .where(Review.user_id.in_(user_ids))
                .where(Review.created_at >= since)
            ).all()
            return [_review_signal(row) for row in rows]

        return await self._run(query)

    async def find_reading_by_users(
        self, user_ids: list[int], since: datetime
    ) -> list[ReadingSignal]:
        if not user_ids:
            return []

        def query(db: Session) -> list[ReadingSignal]:
            rows = db.execute(
                select(Reading.user_id, Reading.book_id, Reading.status, Reading.updated_at)
                .where(Reading.user_id.in_(user_ids))
                .where(Reading.updated_at >= since)
            ).all()
            return [_reading_signal(row) for row in rows]

        return await self._run(query)

    async def count_reviews_by_book(self, since: datetime) -> dict[int, int]:
        def query(db: Session) -> dict[int, int]:
            rows = db.execute(
                select(Review.book_id, func.count().label("n"))
                .where(Review.created_at >= since)
                .group_by(Review.book_id)
            ).all()
            return {book_id: n for book_id, n in rows}

        return await self._run(query)

    async def count_reading_starts_by_book(self, since: datetime) -> dict[int, int]:
        def query(db: Session) -> dict[int, int]:
            rows = db.execute(
                select(Reading.book_id, func.count().label("n"))
                .where(Reading.started_at.isnot(None))
                .where(Reading.started_at >= since)
                .group_by(Reading.book_id)
            ).all()
            return {book_id: n for book_id, n in rows}

        return await self._run(query)


class SqlSocialGraphStore(_SqlStore):
    async def find_following(self, user_id: int) -> list[int]:
        def query(db: Session) -> list[int]:
            return list(
                db.execute(
                    select(Follow.followed_id).where(Follow.follower_id == user_id)
                ).scalars().all()
            )

        return await self._run(query)


class SqlActivityLogStore(_SqlStore):
    async def find_recent_activity(
        self,
        actor_ids: list[int],
        types: list[str],
        since: datetime,
        limit: int,
    ) -> list[ActivityRecord]:
        if not actor_ids:
            return []

        def query(db: Session) -> list[ActivityRecord]:
            activities = db.execute(
                select(Activity)
                .options(
                    selectinload(Activity.actor),
                    selectinload(Activity.book).selectinload(Book.authors),
                    selectinload(Activity.book).selectinload(Book.genres),
                )
                .where(Activity.actor_id.in_(actor_ids))
                .where(Activity.type.in_(types))
                .where(Activity.created_at >= since)
                .order_by(Activity.created_at.desc())
                .limit(limit)
            ).scalars().all()
            return [_activity_record(a) for a in activities]

        return await self._run(query)


class SqlCatalogStore(_SqlStore):
    async def find_books_by_id(self, book_ids: Iterable[int]) -> list[BookRef]:
        ids = list(book_ids)
        if not ids:
            return []

        def query(db: Session) -> list[BookRef]:
            books = db.execute(_book_query().where(Book.id.in_(ids))).scalars().all()
            return [book_to_ref(b) for b in books]

        return await self._run(query)

    async def find_top_rated_books(self, limit: int) -> list[BookRef]:
        def query(db: Session) -> list[BookRef]:
            books = db.execute(
                _book_query()
                .order_by(nulls_last(desc(Book.average_rating)), Book.id)
                .limit(limit)
            ).scalars().all()
            return [book_to_ref(b) for b in books]

        return await self._run(query)

    async def find_most_reviewed_books(self, limit: int) -> list[BookRef]:
        def query(db: Session) -> list[BookRef]:
            books = db.execute(
                _book_query()
                .order_by(
                    desc(Book.review_count),
                    nulls_last(desc(Book.average_rating)),
                    Book.id,
                )
                .limit(limit)
            ).scalars().all()
            return [book_to_ref(b) for b in books]

        return await self._run(query)

    async def find_books_excluding(
        self, book_ids: Iterable[int], limit: int
    ) -> list[BookRef]:
        excluded = list(book_ids)

        def query(db: Session) -> list[BookRef]:
            stmt = _book_query()
            if excluded:
                stmt = stmt.where(Book.id.notin_(excluded))
            books = db.execute(
                stmt.order_by(nulls_last(desc(Book.average_rating)), Book.id).limit(limit)
            ).scalars().all()
            return [book_to_ref(b) for b in books]

        return await self._run(query)


# =============================================================================
# Row Mapping
# =============================================================================


def _review_signal(row: Any) -> ReviewSignal:
    return ReviewSignal(
        user_id=row.user_id,
        book_id=row.book_id,
        rating=row.rating,
        created_at=as_utc(row.created_at),
    )


def _reading_signal(row: Any) -> ReadingSignal:
    return ReadingSignal(
        user_id=row.user_id,
        book_id=row.book_id,
        status=row.status,
        updated_at=as_utc(row.updated_at),
    )


def _activity_record(activity: Activity) -> ActivityRecord:
    rating = None
    if activity.type == ActivityType.REVIEW and activity.action == ActivityAction.CREATED:
        raw = (activity.meta or {}).get("rating")
        rating = int(raw) if isinstance(raw, (int, float)) else None
    return ActivityRecord(
        actor_id=activity.actor_id,
        actor_name=activity.actor.display_name if activity.actor else "Someone",
        type=activity.type,
        action=activity.action,
        book=book_to_ref(activity.book) if activity.book else None,
        created_at=as_utc(activity.created_at),
        message=activity.message,
        rating=rating,
    )
