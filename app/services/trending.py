"""
Trending Books Service

Strategy:
- Only books with activity inside a trailing window are eligible
- Two short-term signals: review volume and reading starts
- Each signal is min-max normalized across the eligible books so neither
  raw volume nor an outlier dominates
- Blended score favours review velocity with a reading-start boost
- Globally popular books are returned, flagged as fallback, when nothing
  happened inside the window

This service does not cache; the feed composer caches its results.
"""

import logging
from dataclasses import dataclass

from app.config import Settings, get_settings
from app.services.candidates import TrendingPick
from app.services.stores import CatalogStore, InteractionStore
from app.utils import days_ago

logger = logging.getLogger(__name__)

REVIEWS_WEIGHT = 0.7
READING_STARTS_WEIGHT = 0.3


@dataclass
class BookMomentum:
    book_id: int
    recent_reviews: int = 0
    reading_starts: int = 0


def min_max(values: list[int]) -> list[float]:
    """
    Scale values to [0, 1].

    Identical values have a zero range; the range is then treated as 1 so
    every value maps to 0 instead of dividing by zero.
    """
    if not values:
        return []
    low, high = min(values), max(values)
    span = (high - low) or 1
    return [(v - low) / span for v in values]


class TrendingProvider:
    """
    Trending candidate source.

    Usage:
        provider = TrendingProvider(interactions, catalog)
        books = await provider.get_trending_books(limit=20, window_days=7)
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

    async def collect_momentum(self, window_days: int) -> list[BookMomentum]:
        """Books with at least one review or reading start inside the window."""
        since = days_ago(window_days)
        reviews = await self.interactions.count_reviews_by_book(since)
        starts = await self.interactions.count_reading_starts_by_book(since)

        momentum: dict[int, BookMomentum] = {}
        for book_id, n in reviews.items():
            momentum.setdefault(book_id, BookMomentum(book_id)).recent_reviews = n
        for book_id, n in starts.items():
            momentum.setdefault(book_id, BookMomentum(book_id)).reading_starts = n
        return [m for m in momentum.values() if m.recent_reviews or m.reading_starts]

    async def get_trending_books(
        self,
        limit: int = 20,
        window_days: int | None = None,
    ) -> list[TrendingPick]:
        """
        Get trending books.

        Args:
            limit: Maximum number of books
            window_days: Trailing window size (defaults to settings)

        Returns:
            Picks sorted by trending score; fallback picks when the window is empty
        """
        window = window_days or self.settings.trending_window_days
        momentum = await self.collect_momentum(window)

        books = {}
        if momentum:
            books = {
                b.id: b
                for b in await self.catalog.find_books_by_id(m.book_id for m in momentum)
            }
        # Signals on books the catalog no longer has are ignored
        momentum = [m for m in momentum if m.book_id in books]

        if not momentum:
            logger.debug(f"No activity in the last {window} days, using popular books")
            return await self._popular_fallback(limit)

        norm_reviews = min_max([m.recent_reviews for m in momentum])
        norm_starts = min_max([m.reading_starts for m in momentum])

        picks = [
            TrendingPick(
                book=books[m.book_id],
                trending_score=REVIEWS_WEIGHT * nr + READING_STARTS_WEIGHT * ns,
                recent_reviews=m.recent_reviews,
                reading_starts=m.reading_starts,
            )
            for m, nr, ns in zip(momentum, norm_reviews, norm_starts)
        ]
        picks.sort(
            key=lambda p: (p.trending_score, p.recent_reviews, p.reading_starts),
            reverse=True,
        )
        return picks[:limit]

    async def _popular_fallback(self, limit: int) -> list[TrendingPick]:
        books = await self.catalog.find_most_reviewed_books(limit)
        return [TrendingPick(book=b, trending_score=0.0, fallback=True) for b in books]
