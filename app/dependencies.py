"""
FastAPI Dependencies Module

Dependencies are reusable components injected into route handlers.
FastAPI's Depends() function manages their lifecycle.

Feed dependencies:
- DbSession: request-scoped session for the few direct reads/writes
- FeedQuery: page/limit/types/since, clamped instead of rejected
- Composer: a FeedComposer wired to the SQL stores and the app's cache

Tests override get_session_factory and get_result_cache (or the provider
getters directly) through app.dependency_overrides.
"""

from datetime import datetime
from typing import Annotated

from fastapi import Depends, Query, Request
from sqlalchemy.orm import Session, sessionmaker

from app.config import get_settings
from app.database import get_db, get_session_factory
from app.services.cache import LocalCache, ResultCache, TieredCache
from app.services.candidates import SourceSignal
from app.services.feed import ALL_SOURCES, FeedComposer
from app.services.recommendations import PersonalizedProvider
from app.services.social import SocialProvider
from app.services.stores import (
    SqlActivityLogStore,
    SqlCatalogStore,
    SqlInteractionStore,
    SqlSocialGraphStore,
)
from app.services.trending import TrendingProvider
from app.utils import as_utc

# =============================================================================
# Type Aliases with Annotated
# =============================================================================
# Instead of writing:
#   def mark_seen(db: Session = Depends(get_db)):
#
# You can write:
#   def mark_seen(db: DbSession):

DbSession = Annotated[Session, Depends(get_db)]
SessionFactory = Annotated[sessionmaker, Depends(get_session_factory)]


# =============================================================================
# Feed Query Parameters
# =============================================================================
def parse_source_types(raw: str | None) -> frozenset[SourceSignal]:
    """
    Parse the comma-separated `types` filter.

    Examples:
        None                   -> all sources
        "personal,following"   -> {personal, following}
        "personal,podcasts"    -> {personal} (unknown names are ignored)
        ""                     -> empty set (empty feed)
    """
    if raw is None:
        return ALL_SOURCES
    known = {s.value: s for s in SourceSignal}
    names = (part.strip().lower() for part in raw.split(","))
    return frozenset(known[name] for name in names if name in known)


class FeedQueryParams:
    """
    Query parameters for feed endpoints.

    Out-of-range values are clamped rather than rejected, so a client asking
    for page 0 or limit 500 still gets a feed:
    - page: at least 1
    - limit: between 1 and feed_max_limit

    Usage in route:
        @router.get("/users/{user_id}/feed")
        async def get_feed(user_id: int, params: FeedQuery):
            options = FeedOptions(page=params.page, limit=params.limit, ...)
    """

    def __init__(
        self,
        page: int = Query(
            default=1,
            description="Page number (1-indexed)",
            examples=[1, 2],
        ),
        limit: int | None = Query(
            default=None,
            description="Items per page (clamped to 1..50)",
            examples=[10, 20],
        ),
        types: str | None = Query(
            default=None,
            description="Comma-separated sources: personal, trending, following",
            examples=["personal,trending", "following"],
        ),
        since: datetime | None = Query(
            default=None,
            description="Only items newer than this instant (ISO 8601)",
            examples=["2024-05-01T12:00:00Z"],
        ),
    ) -> None:
        settings = get_settings()
        if limit is None:
            limit = settings.feed_default_limit
        self.page = max(1, page)
        self.limit = min(settings.feed_max_limit, max(1, limit))
        self.types = parse_source_types(types)
        self.since = as_utc(since)


FeedQuery = Annotated[FeedQueryParams, Depends()]


# =============================================================================
# Result Cache
# =============================================================================
def get_result_cache(request: Request) -> ResultCache:
    """
    The cache built in the application lifespan.

    An app started without its lifespan (some test clients) gets a private
    in-process cache instead.
    """
    cache = getattr(request.app.state, "result_cache", None)
    if cache is None:
        cache = TieredCache(None, LocalCache(get_settings().local_cache_max_entries))
        request.app.state.result_cache = cache
    return cache


# =============================================================================
# Providers
# =============================================================================
def get_personalized_provider(session_factory: SessionFactory) -> PersonalizedProvider:
    return PersonalizedProvider(
        SqlInteractionStore(session_factory),
        SqlCatalogStore(session_factory),
    )


def get_trending_provider(session_factory: SessionFactory) -> TrendingProvider:
    return TrendingProvider(
        SqlInteractionStore(session_factory),
        SqlCatalogStore(session_factory),
    )


def get_social_provider(session_factory: SessionFactory) -> SocialProvider:
    return SocialProvider(
        SqlSocialGraphStore(session_factory),
        SqlActivityLogStore(session_factory),
    )


Personalized = Annotated[PersonalizedProvider, Depends(get_personalized_provider)]
Trending = Annotated[TrendingProvider, Depends(get_trending_provider)]
Social = Annotated[SocialProvider, Depends(get_social_provider)]


def get_feed_composer(
    personalized: Personalized,
    trending: Trending,
    social: Social,
    cache: Annotated[ResultCache, Depends(get_result_cache)],
) -> FeedComposer:
    """Per-request composer; all shared state lives in the cache."""
    return FeedComposer(personalized, trending, social, cache)


Composer = Annotated[FeedComposer, Depends(get_feed_composer)]
