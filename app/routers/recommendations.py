"""
Recommendations Router

Standalone views over the candidate providers, outside the composed feed.

Endpoints:
- GET /books/trending - Books with recent review and reading momentum
- GET /users/{user_id}/taste - Genre distribution of a user's history
"""

from typing import Annotated

from fastapi import APIRouter, Query, Request

from app.config import get_settings
from app.dependencies import Personalized, Trending
from app.schemas.feed import TasteResponse, TrendingBookItem, TrendingBooksResponse
from app.services.rate_limiter import limiter

settings = get_settings()

# =============================================================================
# Router Configuration
# =============================================================================

router = APIRouter(
    tags=["Recommendations"],
)


# =============================================================================
# Endpoints
# =============================================================================


@router.get(
    "/books/trending",
    response_model=TrendingBooksResponse,
    summary="Get trending books",
    description="""
Books with the most activity in a trailing window.

Score: `0.7 * reviews + 0.3 * reading starts`, each min-max normalized
across the window. When nothing happened in the window, the most reviewed
books overall are returned with `fallback: true` and a score of 0.
""",
)
@limiter.limit(settings.rate_limit_default)
async def get_trending(
    request: Request,
    provider: Trending,
    limit: Annotated[
        int,
        Query(description="Maximum number of books to return (clamped to 1..100)"),
    ] = 20,
    window: Annotated[
        int | None,
        Query(description="Trailing window in days (at least 1)"),
    ] = None,
) -> TrendingBooksResponse:
    """Get trending books."""
    limit = min(100, max(1, limit))
    window_days = max(1, window) if window is not None else settings.trending_window_days

    picks = await provider.get_trending_books(limit=limit, window_days=window_days)

    return TrendingBooksResponse(
        total=len(picks),
        window_days=window_days,
        items=[TrendingBookItem.model_validate(p) for p in picks],
    )


@router.get(
    "/users/{user_id}/taste",
    response_model=TasteResponse,
    summary="Get a user's genre taste",
    description="Share of each genre across the books the user reviewed, is reading or shelved.",
)
@limiter.limit(settings.rate_limit_default)
async def get_taste(
    request: Request,
    user_id: int,
    provider: Personalized,
) -> TasteResponse:
    """Genre taste vector."""
    genres = await provider.get_user_taste_vector(user_id)
    return TasteResponse(user_id=user_id, genres=genres)
