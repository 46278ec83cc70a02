"""
Feed Composition Service

Merges the three candidate sources into one ranked, paginated list per user.

Pipeline (compose_feed):
1. Fetch personal, trending and following candidates concurrently. Each
   source has its own timeout; a failing or slow source contributes nothing.
   Personal and trending go through the result cache first.
2. Normalize every payload into a Candidate (timestamp, friendly reason).
3. Deduplicate by book identity: following always wins, otherwise the
   higher score wins, equal scores keep the first seen.
4. Rank: weighted blend of score and a linear recency boost.
5. Sort by rank (ties: newest first), apply the unread filter, paginate.

Following-always-wins is a product decision: a book a friend just touched
is shown as the friend's activity even if an algorithm scored it higher.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeVar

from app.config import Settings, get_settings
from app.services.cache import ResultCache, make_cache_key
from app.services.candidates import (
    REASON_COOCCURRENCE,
    REASON_FALLBACK_POPULAR,
    REASON_POPULAR_FALLBACK,
    REASON_TRENDING_FALLBACK,
    BookRef,
    Candidate,
    FollowAction,
    FollowingUpdate,
    PersonalPick,
    SourceSignal,
    TrendingPick,
)
from app.services.recommendations import PersonalizedProvider
from app.services.social import SocialProvider
from app.services.trending import TrendingProvider
from app.utils import as_utc, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALL_SOURCES = frozenset(SourceSignal)

REASON_MESSAGES = {
    REASON_POPULAR_FALLBACK: "Popular with readers",
    REASON_FALLBACK_POPULAR: "Something new to explore",
    REASON_TRENDING_FALLBACK: "Popular right now",
}

GENERIC_MESSAGES = {
    SourceSignal.PERSONAL: "Picked for you",
    SourceSignal.TRENDING: "Trending now",
    SourceSignal.FOLLOWING: "From people you follow",
}

ACTION_VERBS = {
    FollowAction.REVIEW: "reviewed",
    FollowAction.STARTED: "started reading",
    FollowAction.FINISHED: "finished",
    FollowAction.SHELVED: "shelved",
}


# =============================================================================
# Feed Types
# =============================================================================


@dataclass
class FeedOptions:
    """
    Query options for compose_feed.

    Values are expected to be valid already (see app.dependencies):
    page >= 1, 1 <= limit <= feed_max_limit.
    """

    page: int = 1
    limit: int = 20
    types: frozenset[SourceSignal] = ALL_SOURCES
    since: datetime | None = None
    last_seen: datetime | None = None


@dataclass
class FeedItem:
    id: str
    source: SourceSignal
    score: float
    rank: float
    created_at: datetime
    friendly_reason: str
    reason: str | None
    book: BookRef


@dataclass
class FeedPage:
    page: int
    limit: int
    total: int
    items: list[FeedItem] = field(default_factory=list)
    unread_count: int = 0


@dataclass
class HomeFeed:
    trending: list[FeedItem] = field(default_factory=list)
    recommended: list[FeedItem] = field(default_factory=list)
    following: list[FeedItem] = field(default_factory=list)


# =============================================================================
# Ranking
# =============================================================================


def recency_boost(created_at: datetime, now: datetime, half_life_hours: float = 36.0) -> float:
    """
    Linear decay from 1 (just now) to 0 at twice the half-life.

    Timestamps in the future count as "just now".
    """
    hours = max(0.0, (now - created_at).total_seconds() / 3600)
    return max(0.0, 1 - hours / (2 * half_life_hours))


def compute_rank(
    score: float,
    created_at: datetime,
    now: datetime,
    score_weight: float = 0.72,
    recency_weight: float = 0.28,
    half_life_hours: float = 36.0,
) -> float:
    """Final ordering key. Depends only on its arguments."""
    return score_weight * score + recency_weight * recency_boost(created_at, now, half_life_hours)


# =============================================================================
# Normalization
# =============================================================================


def friendly_reason(
    source: SourceSignal,
    reason: str | None = None,
    update: FollowingUpdate | None = None,
) -> str:
    """
    Human-readable explanation for a feed item.

    Examples:
        "cf_cooccur:3"      -> "Because similar readers liked it (3)"
        "popular_fallback"  -> "Popular with readers"
        following update    -> its message, else "Ana finished this"
    """
    if update is not None:
        if update.message:
            return update.message
        return f"{update.actor_name} {ACTION_VERBS.get(update.action, 'shared')} this"

    if reason:
        prefix, _, count = reason.partition(":")
        if prefix == REASON_COOCCURRENCE and count:
            return f"Because similar readers liked it ({count})"
        if reason in REASON_MESSAGES:
            return REASON_MESSAGES[reason]

    return GENERIC_MESSAGES[source]


def _timestamp(explicit: datetime | None, book: BookRef, now: datetime) -> datetime:
    return as_utc(explicit or book.updated_at) or now


def normalize_personal(pick: PersonalPick, now: datetime) -> Candidate:
    return Candidate(
        book=pick.book,
        source=SourceSignal.PERSONAL,
        score=pick.score,
        created_at=_timestamp(pick.signal_at, pick.book, now),
        friendly_reason=friendly_reason(SourceSignal.PERSONAL, pick.reason),
        reason=pick.reason,
    )


def normalize_trending(pick: TrendingPick, now: datetime) -> Candidate:
    return Candidate(
        book=pick.book,
        source=SourceSignal.TRENDING,
        score=pick.trending_score,
        created_at=_timestamp(None, pick.book, now),
        friendly_reason=friendly_reason(SourceSignal.TRENDING, pick.reason),
        reason=pick.reason,
        fallback=pick.fallback,
    )


def normalize_following(update: FollowingUpdate, now: datetime) -> Candidate:
    return Candidate(
        book=update.book,
        source=SourceSignal.FOLLOWING,
        score=update.score,
        created_at=_timestamp(update.created_at, update.book, now),
        friendly_reason=friendly_reason(SourceSignal.FOLLOWING, update=update),
        reason=str(update.action),
    )


# =============================================================================
# Deduplication
# =============================================================================


def _replaces(challenger: Candidate, incumbent: Candidate) -> bool:
    challenger_social = challenger.source == SourceSignal.FOLLOWING
    incumbent_social = incumbent.source == SourceSignal.FOLLOWING
    if challenger_social != incumbent_social:
        return challenger_social
    return challenger.score > incumbent.score


def dedupe_candidates(candidates: Iterable[Candidate]) -> dict[str, Candidate]:
    """
    Reduce candidates to one per book identity key.

    Processed in order, so on equal scores the earlier candidate stays.
    """
    ranked: dict[str, Candidate] = {}
    for candidate in candidates:
        key = candidate.identity_key
        incumbent = ranked.get(key)
        if incumbent is None or _replaces(candidate, incumbent):
            ranked[key] = candidate
    return ranked


# =============================================================================
# Composer
# =============================================================================


class FeedComposer:
    """
    Builds feeds from the three providers and the result cache.

    One composer per request is fine: it holds no per-feed state.

    Usage:
        composer = FeedComposer(personalized, trending, social, cache)
        page = await composer.compose_feed(42, FeedOptions(page=1, limit=20))
    """

    def __init__(
        self,
        personalized: PersonalizedProvider,
        trending: TrendingProvider,
        social: SocialProvider,
        cache: ResultCache,
        settings: Settings | None = None,
    ) -> None:
        self.personalized = personalized
        self.trending = trending
        self.social = social
        self.cache = cache
        self.settings = settings or get_settings()

    # =========================================================================
    # Public API
    # =========================================================================

    async def compose_feed(self, user_id: int, options: FeedOptions) -> FeedPage:
        """
        Compose one page of a user's feed.

        Args:
            user_id: The reader
            options: Page, limit, source filter and unread bounds

        Returns:
            FeedPage with the total after dedupe and unread filtering
        """
        if not options.types:
            return FeedPage(page=options.page, limit=options.limit, total=0)

        since = as_utc(options.since)
        candidates = await self.fetch_candidates(user_id, options.types, since)
        now = utcnow()
        items = self.rank(dedupe_candidates(candidates).values(), now)

        if since is not None:
            items = [item for item in items if item.created_at > since]

        total = len(items)
        start = (options.page - 1) * options.limit
        page_items = items[start:start + options.limit]

        last_seen = as_utc(options.last_seen)
        if last_seen is not None:
            unread_count = sum(1 for item in items if item.created_at > last_seen)
        elif since is not None:
            unread_count = total
        else:
            unread_count = 0

        logger.debug(
            f"Feed for user {user_id}: {len(candidates)} candidates, "
            f"{total} after dedupe, page {options.page} has {len(page_items)}"
        )
        return FeedPage(
            page=options.page,
            limit=options.limit,
            total=total,
            items=page_items,
            unread_count=unread_count,
        )

    async def compose_preview(
        self,
        user_id: int,
        types: frozenset[SourceSignal] = ALL_SOURCES,
        since: datetime | None = None,
    ) -> FeedPage:
        """First page of the feed at preview size."""
        options = FeedOptions(
            page=1,
            limit=self.settings.feed_preview_limit,
            types=types,
            since=since,
        )
        return await self.compose_feed(user_id, options)

    async def compose_home(self, user_id: int) -> HomeFeed:
        """
        Per-source sections for the home screen.

        Sections are ranked independently; the same book may appear in more
        than one section.
        """
        now = utcnow()
        limit = self.settings.home_section_limit
        personal, trending, following = await asyncio.gather(
            self._fetch_personal(user_id),
            self._fetch_trending(),
            self._fetch_following(user_id),
        )
        return HomeFeed(
            trending=self.rank([normalize_trending(p, now) for p in trending], now)[:limit],
            recommended=self.rank([normalize_personal(p, now) for p in personal], now)[:limit],
            following=self.rank([normalize_following(u, now) for u in following], now)[:limit],
        )

    # =========================================================================
    # Candidates
    # =========================================================================

    async def fetch_candidates(
        self,
        user_id: int,
        types: Iterable[SourceSignal],
        since: datetime | None = None,
    ) -> list[Candidate]:
        """
        Fetch the requested sources concurrently and normalize them.

        Candidates come back in source order (personal, trending, following),
        which is the order deduplication sees them in.
        """
        wanted = set(types)
        jobs = []
        if SourceSignal.PERSONAL in wanted:
            jobs.append((SourceSignal.PERSONAL, self._fetch_personal(user_id)))
        if SourceSignal.TRENDING in wanted:
            jobs.append((SourceSignal.TRENDING, self._fetch_trending()))
        if SourceSignal.FOLLOWING in wanted:
            jobs.append((SourceSignal.FOLLOWING, self._fetch_following(user_id, since)))

        results = await asyncio.gather(*(job for _, job in jobs))

        now = utcnow()
        candidates: list[Candidate] = []
        for (source, _), payloads in zip(jobs, results):
            normalize = _NORMALIZERS[source]
            candidates.extend(normalize(payload, now) for payload in payloads)
        return candidates

    def rank(self, candidates: Iterable[Candidate], now: datetime) -> list[FeedItem]:
        """Turn candidates into feed items sorted by rank, newest first on ties."""
        items = [
            FeedItem(
                id=str(uuid.uuid4()),
                source=c.source,
                score=c.score,
                rank=self._rank_of(c, now),
                created_at=c.created_at,
                friendly_reason=c.friendly_reason,
                reason=c.reason,
                book=c.book,
            )
            for c in candidates
        ]
        items.sort(key=lambda item: (item.rank, item.created_at), reverse=True)
        return items

    def _rank_of(self, candidate: Candidate, now: datetime) -> float:
        # Fallback picks carry no real timestamp, so they get no recency credit
        if candidate.fallback:
            return self.settings.rank_score_weight * candidate.score
        return compute_rank(
            candidate.score,
            candidate.created_at,
            now,
            score_weight=self.settings.rank_score_weight,
            recency_weight=self.settings.rank_recency_weight,
            half_life_hours=self.settings.recency_half_life_hours,
        )

    # =========================================================================
    # Sources
    # =========================================================================

    async def _guarded(
        self, source: SourceSignal, job: Awaitable[list[T]]
    ) -> list[T] | None:
        """
        Run one provider call with a timeout.

        Returns None when the provider fails or times out. Only the provider
        call is timed; cache traffic around it is not.
        """
        timeout = self.settings.provider_timeout_seconds
        try:
            return await asyncio.wait_for(job, timeout=timeout)
        except TimeoutError:
            logger.warning(f"{source} provider timed out after {timeout}s")
        except Exception as e:
            logger.error(f"{source} provider failed: {e}")
        return None

    async def _fetch_personal(self, user_id: int) -> list[PersonalPick]:
        limit = self.settings.feed_candidate_limit
        return await self._cached(
            SourceSignal.PERSONAL,
            make_cache_key("feed", SourceSignal.PERSONAL.value, user_id, limit=limit),
            self.settings.personalized_cache_ttl,
            lambda: self.personalized.get_personalized_picks(user_id, limit=limit),
            PersonalPick.from_dict,
        )

    async def _fetch_trending(self) -> list[TrendingPick]:
        limit = self.settings.feed_candidate_limit
        window = self.settings.trending_window_days
        return await self._cached(
            SourceSignal.TRENDING,
            make_cache_key("feed", SourceSignal.TRENDING.value, limit=limit, window=window),
            self.settings.trending_cache_ttl,
            lambda: self.trending.get_trending_books(limit=limit, window_days=window),
            TrendingPick.from_dict,
        )

    async def _fetch_following(
        self, user_id: int, since: datetime | None = None
    ) -> list[FollowingUpdate]:
        updates = await self._guarded(
            SourceSignal.FOLLOWING,
            self.social.get_followed_users_updates(
                user_id, limit=self.settings.feed_candidate_limit, since=since
            ),
        )
        return updates or []

    async def _cached(
        self,
        source: SourceSignal,
        key: str,
        ttl: int,
        load: Callable[[], Awaitable[list[Any]]],
        decode: Callable[[dict[str, Any]], T],
    ) -> list[T]:
        """
        Cache-aside read of a provider result.

        Cache errors and undecodable entries count as a miss; the provider
        is then called under the timeout and its result written back. A
        failed provider call yields an empty list and is not cached.
        """
        try:
            cached = await self.cache.get(key)
        except Exception as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            cached = None

        if cached is not None:
            try:
                return [decode(entry) for entry in cached]
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Ignoring malformed cache entry {key}: {e}")

        picks = await self._guarded(source, load())
        if picks is None:
            return []
        try:
            await self.cache.set(key, [p.to_dict() for p in picks], ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for {key}: {e}")
        return picks


_NORMALIZERS: dict[SourceSignal, Callable[[Any, datetime], Candidate]] = {
    SourceSignal.PERSONAL: normalize_personal,
    SourceSignal.TRENDING: normalize_trending,
    SourceSignal.FOLLOWING: normalize_following,
}
