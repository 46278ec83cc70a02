"""
Personalized Recommendations Service

Collaborative filtering over recent reader signals:
1. Seed set: books the user reviewed, is reading or shelved
2. Similar users: readers who reviewed any of the seed books recently
3. Candidates: what those readers reviewed or read, minus the seed set
4. Score: blend of co-occurrence frequency, rating and recency

Features:
- Graceful handling of cold-start users (top-rated catalog books)
- Fallback to unseen catalog books when no neighbourhood exists
- Genre taste vector for profile pages

Similarity here is a plain co-occurrence count, not a trained model.
Caching is the caller's job (see app.services.feed).
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime

from app.config import Settings, get_settings
from app.services.candidates import (
    REASON_COOCCURRENCE,
    REASON_FALLBACK_POPULAR,
    REASON_POPULAR_FALLBACK,
    BookRef,
    PersonalPick,
)
from app.services.stores import CatalogStore, InteractionStore
from app.utils import days_ago, utcnow

logger = logging.getLogger(__name__)

# Signal weights: a review is a finished, rated read; a reading entry is intent
REVIEW_WEIGHT = 1.0
READING_WEIGHT = 0.6

# Score blend
FREQUENCY_WEIGHT = 0.55
RATING_WEIGHT = 0.30
RECENCY_WEIGHT = 0.15

FREQUENCY_SATURATION = 10
MAX_RATING = 5.0


@dataclass
class CandidateStats:
    """Accumulated co-occurrence evidence for one candidate book."""

    count: float = 0.0
    rating_sum: float = 0.0
    rating_count: int = 0
    last_signal: datetime | None = None

    @property
    def avg_rating(self) -> float:
        return self.rating_sum / self.rating_count if self.rating_count else 0.0

    def add(self, weight: float, at: datetime, rating: int | None = None) -> None:
        self.count += weight
        if rating is not None:
            self.rating_sum += rating
            self.rating_count += 1
        if self.last_signal is None or at > self.last_signal:
            self.last_signal = at


@dataclass
class UserInteractions:
    """Everything a user has touched, with seed order preserved."""

    book_ids: list[int] = field(default_factory=list)

    @property
    def seen(self) -> set[int]:
        return set(self.book_ids)


def score_candidate(
    stats: CandidateStats,
    now: datetime,
    recency_days: int = 90,
) -> float:
    """
    Blend frequency, rating and recency into a [0, 1] relevance score.

    - freq saturates at 10 co-occurrences
    - rating saturates at 5 stars
    - recency decays linearly to 0 over `recency_days`
    """
    freq = min(1.0, stats.count / FREQUENCY_SATURATION)
    rating = min(1.0, stats.avg_rating / MAX_RATING)
    if stats.last_signal is None:
        recency = 0.0
    else:
        hours = max(0.0, (now - stats.last_signal).total_seconds() / 3600)
        recency = max(0.0, 1 - hours / (24 * recency_days))
    return FREQUENCY_WEIGHT * freq + RATING_WEIGHT * rating + RECENCY_WEIGHT * recency


def cooccurrence_reason(count: float) -> str:
    """Reason code carrying the rounded co-occurrence weight (half rounds up)."""
    return f"{REASON_COOCCURRENCE}:{math.floor(count + 0.5)}"


class PersonalizedProvider:
    """
    Personalized candidate source.

    Usage:
        provider = PersonalizedProvider(interactions, catalog)
        picks = await provider.get_personalized_picks(user_id=42, limit=50)
    """

    def __init__(
        self,
        interactions: InteractionStore,
        catalog: CatalogStore,
        settings: Settings | None = None,
    ) -> None:
        self.interactions = interactions
        self.catalog = catalog
        self.settings = settings or get_settings()

    # =========================================================================
    # Interactions
    # =========================================================================

    async def get_user_interactions(self, user_id: int) -> UserInteractions:
        """
        Collect the books a user reviewed, has a reading entry for, or shelved.

        Reviews come first, then reading entries, then shelf items; a book
        keeps the position of its first appearance.
        """
        reviews = await self.interactions.find_reviews_by_user(user_id)
        readings = await self.interactions.find_reading_by_user(user_id)
        shelf_items = await self.interactions.find_shelf_items_by_user(user_id)

        ordered: dict[int, None] = {}
        for book_id in (
            [r.book_id for r in reviews]
            + [r.book_id for r in readings]
            + [s.book_id for s in shelf_items]
        ):
            ordered.setdefault(book_id, None)
        return UserInteractions(book_ids=list(ordered))

    # =========================================================================
    # Collaborative Filtering
    # =========================================================================

    async def find_similar_users(self, seed_book_ids: list[int], user_id: int) -> list[int]:
        """
        Readers who reviewed any seed book inside the lookback window,
        most overlapping first.
        """
        since = days_ago(self.settings.personalized_window_days)
        reviews = await self.interactions.find_reviews_for_books(seed_book_ids, since)

        overlap: Counter[int] = Counter(
            r.user_id for r in reviews if r.user_id != user_id
        )
        ranked = sorted(overlap.items(), key=lambda item: (-item[1], item[0]))
        return [uid for uid, _ in ranked[: self.settings.similar_user_limit]]

    async def collect_candidates(
        self,
        similar_user_ids: list[int],
        exclude_book_ids: set[int],
    ) -> dict[int, CandidateStats]:
        """Accumulate weighted signals from similar readers on unseen books."""
        since = days_ago(self.settings.personalized_window_days)
        reviews = await self.interactions.find_reviews_by_users(similar_user_ids, since)
        readings = await self.interactions.find_reading_by_users(similar_user_ids, since)

        stats: dict[int, CandidateStats] = {}
        for review in reviews:
            if review.book_id in exclude_book_ids:
                continue
            stats.setdefault(review.book_id, CandidateStats()).add(
                REVIEW_WEIGHT, review.created_at, rating=review.rating
            )
        for reading in readings:
            if reading.book_id in exclude_book_ids:
                continue
            stats.setdefault(reading.book_id, CandidateStats()).add(
                READING_WEIGHT, reading.updated_at
            )
        return stats

    async def get_personalized_picks(self, user_id: int, limit: int = 50) -> list[PersonalPick]:
        """
        Get personalized picks for a user.

        Algorithm:
        1. No interactions at all: top-rated catalog books (cold start)
        2. Find similar users from the first seed books
        3. No similar users or no candidates: unseen catalog books
        4. Otherwise score candidates and return the best `limit`

        Args:
            user_id: ID of the user to recommend for
            limit: Maximum number of picks

        Returns:
            Picks sorted by score (ties: most recent signal first)
        """
        interactions = await self.get_user_interactions(user_id)

        if not interactions.book_ids:
            logger.debug(f"User {user_id} has no interactions, using top-rated books")
            books = await self.catalog.find_top_rated_books(limit)
            return self._fallback_picks(books, REASON_POPULAR_FALLBACK)

        seen = interactions.seen
        seed_book_ids = interactions.book_ids[: self.settings.cf_seed_limit]
        similar_user_ids = await self.find_similar_users(seed_book_ids, user_id)
        if not similar_user_ids:
            logger.debug(f"No similar readers for user {user_id}, using unseen books")
            return await self._unseen_fallback(seen, limit)

        stats = await self.collect_candidates(similar_user_ids, seen)
        if not stats:
            logger.debug(f"Similar readers of user {user_id} left no candidates")
            return await self._unseen_fallback(seen, limit)

        books = {b.id: b for b in await self.catalog.find_books_by_id(stats.keys())}
        now = utcnow()
        picks = []
        for book_id, entry in stats.items():
            book = books.get(book_id)
            if book is None:
                continue
            picks.append(PersonalPick(
                book=book,
                score=score_candidate(entry, now, self.settings.personalized_recency_days),
                reason=cooccurrence_reason(entry.count),
                signal_at=entry.last_signal,
            ))

        picks.sort(key=lambda p: (p.score, p.signal_at or now), reverse=True)
        return picks[:limit]

    async def _unseen_fallback(self, seen: set[int], limit: int) -> list[PersonalPick]:
        books = await self.catalog.find_books_excluding(seen, limit)
        return self._fallback_picks(books, REASON_FALLBACK_POPULAR)

    def _fallback_picks(self, books: list[BookRef], reason: str) -> list[PersonalPick]:
        # Catalog order is kept: it is already the popularity order
        return [
            PersonalPick(book=book, score=self.settings.cold_start_score, reason=reason)
            for book in books
        ]

    # =========================================================================
    # Taste Vector
    # =========================================================================

    async def get_user_taste_vector(self, user_id: int) -> dict[str, float]:
        """
        Genre distribution over everything the user interacted with.

        Returns:
            {genre name: share}, shares summing to 1; empty without history
        """
        interactions = await self.get_user_interactions(user_id)
        if not interactions.book_ids:
            return {}

        books = await self.catalog.find_books_by_id(interactions.book_ids)
        counts: Counter[str] = Counter(g for b in books for g in b.genres)
        total = sum(counts.values())
        if not total:
            return {}
        return {genre: round(n / total, 4) for genre, n in counts.most_common()}
