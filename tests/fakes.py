"""
In-memory collaborator stores for provider and composer tests.

Each fake satisfies the matching Protocol in app.services.stores. The
interaction and activity fakes record their calls so tests can assert that
a query was (or was not) made.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta

from app.services.candidates import BookRef
from app.services.stores import ActivityRecord, ReadingSignal, ReviewSignal, ShelfSignal
from app.utils import utcnow


def make_book(
    book_id: int | None,
    title: str | None = None,
    avg_rating: float | None = None,
    authors: list[str] | None = None,
    genres: list[str] | None = None,
    external_id: str | None = None,
    updated_at: datetime | None = None,
) -> BookRef:
    return BookRef(
        id=book_id,
        title=title or f"Book {book_id}",
        authors=authors if authors is not None else ["Some Author"],
        external_id=external_id,
        avg_rating=avg_rating,
        genres=genres or [],
        updated_at=updated_at,
    )


def hours_ago(hours: float, now: datetime | None = None) -> datetime:
    """Timestamp relative to the real clock; provider windows use it too."""
    return (now or utcnow()) - timedelta(hours=hours)


class FakeInteractionStore:
    def __init__(
        self,
        reviews: Iterable[ReviewSignal] = (),
        readings: Iterable[ReadingSignal] = (),
        shelf_items: dict[int, list[ShelfSignal]] | None = None,
        reading_starts: Iterable[tuple[int, datetime]] = (),
    ) -> None:
        self.reviews = list(reviews)
        self.readings = list(readings)
        self.shelf_items = shelf_items or {}
        self.reading_starts = list(reading_starts)
        self.calls: list[str] = []

    async def find_reviews_by_user(self, user_id):
        self.calls.append("find_reviews_by_user")
        return [r for r in self.reviews if r.user_id == user_id]

    async def find_reading_by_user(self, user_id):
        self.calls.append("find_reading_by_user")
        return [r for r in self.readings if r.user_id == user_id]

    async def find_shelf_items_by_user(self, user_id):
        self.calls.append("find_shelf_items_by_user")
        return list(self.shelf_items.get(user_id, []))

    async def find_reviews_for_books(self, book_ids, since):
        self.calls.append("find_reviews_for_books")
        wanted = set(book_ids)
        return [r for r in self.reviews if r.book_id in wanted and r.created_at >= since]

    async def find_reviews_by_users(self, user_ids, since):
        self.calls.append("find_reviews_by_users")
        wanted = set(user_ids)
        return [r for r in self.reviews if r.user_id in wanted and r.created_at >= since]

    async def find_reading_by_users(self, user_ids, since):
        self.calls.append("find_reading_by_users")
        wanted = set(user_ids)
        return [r for r in self.readings if r.user_id in wanted and r.updated_at >= since]

    async def count_reviews_by_book(self, since):
        counts: dict[int, int] = {}
        for r in self.reviews:
            if r.created_at >= since:
                counts[r.book_id] = counts.get(r.book_id, 0) + 1
        return counts

    async def count_reading_starts_by_book(self, since):
        counts: dict[int, int] = {}
        for book_id, started_at in self.reading_starts:
            if started_at >= since:
                counts[book_id] = counts.get(book_id, 0) + 1
        return counts


class FakeCatalogStore:
    def __init__(
        self,
        books: Iterable[BookRef] = (),
        review_counts: dict[int, int] | None = None,
    ) -> None:
        self.books = list(books)
        self.review_counts = review_counts or {}

    def _top_rated(self) -> list[BookRef]:
        rated = [b for b in self.books if b.avg_rating is not None]
        unrated = [b for b in self.books if b.avg_rating is None]
        return sorted(rated, key=lambda b: -b.avg_rating) + unrated

    async def find_books_by_id(self, book_ids):
        wanted = set(book_ids)
        return [b for b in self.books if b.id in wanted]

    async def find_top_rated_books(self, limit):
        return self._top_rated()[:limit]

    async def find_most_reviewed_books(self, limit):
        ordered = sorted(self.books, key=lambda b: -self.review_counts.get(b.id, 0))
        return ordered[:limit]

    async def find_books_excluding(self, book_ids, limit):
        excluded = set(book_ids)
        return [b for b in self._top_rated() if b.id not in excluded][:limit]


class FakeSocialGraphStore:
    def __init__(self, following: dict[int, list[int]] | None = None) -> None:
        self.following = following or {}

    async def find_following(self, user_id):
        return list(self.following.get(user_id, []))


class FakeActivityLogStore:
    def __init__(self, records: Iterable[ActivityRecord] = ()) -> None:
        self.records = list(records)
        self.calls = 0

    async def find_recent_activity(self, actor_ids, types, since, limit):
        self.calls += 1
        matches = [
            r for r in self.records
            if r.actor_id in actor_ids and r.type in types and r.created_at >= since
        ]
        matches.sort(key=lambda r: r.created_at, reverse=True)
        return matches[:limit]
