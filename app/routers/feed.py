"""
Feed Router

Per-user feed endpoints. The user comes from the path; authentication is
enforced by the gateway in front of this service.

Endpoints:
- GET /users/{user_id}/feed - Ranked, paginated feed
- GET /users/{user_id}/feed/preview - First few items (notification dropdown)
- GET /users/{user_id}/feed/home - Per-source sections for the home screen
- POST /users/{user_id}/feed/mark-seen - Reset the unread counter
"""

import logging

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.config import get_settings
from app.dependencies import Composer, DbSession, FeedQuery
from app.models import User
from app.schemas.feed import (
    FeedItemResponse,
    FeedPreviewResponse,
    FeedResponse,
    HomeFeedResponse,
    MarkSeenResponse,
)
from app.services.feed import FeedOptions
from app.services.rate_limiter import FEED_RATE_LIMIT, WRITE_RATE_LIMIT, limiter
from app.utils import as_utc, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()

# =============================================================================
# Router Configuration
# =============================================================================

router = APIRouter(
    prefix="/users/{user_id}/feed",
    tags=["Feed"],
    responses={404: {"description": "User not found"}},
)


# =============================================================================
# Helper Functions
# =============================================================================


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.execute(select(User).where(User.id == user_id)).scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User with id {user_id} not found",
        )
    return user


def _last_feed_seen(db: Session, user_id: int):
    seen = db.execute(
        select(User.last_feed_seen).where(User.id == user_id)
    ).scalar_one_or_none()
    return as_utc(seen)


# =============================================================================
# Endpoints
# =============================================================================


@router.get(
    "",
    response_model=FeedResponse,
    summary="Get a user's feed",
    description="""
Merged feed of personalized picks, trending books and activity from followed
accounts.

**Ranking:** `0.72 * score + 0.28 * recency`, recency decaying to zero over
72 hours. A book suggested by several sources appears once; activity from a
followed account always takes precedence.

**Unread:** with `since`, only newer items are returned. Without it,
`unread_count` counts items newer than the last mark-seen.
""",
)
@limiter.limit(FEED_RATE_LIMIT)
async def get_feed(
    request: Request,
    user_id: int,
    params: FeedQuery,
    composer: Composer,
    db: DbSession,
) -> FeedResponse:
    """Compose one page of the feed."""
    last_seen = None
    if params.since is None:
        last_seen = await run_in_threadpool(_last_feed_seen, db, user_id)

    page = await composer.compose_feed(
        user_id,
        FeedOptions(
            page=params.page,
            limit=params.limit,
            types=params.types,
            since=params.since,
            last_seen=last_seen,
        ),
    )

    return FeedResponse(
        page=page.page,
        limit=page.limit,
        total=page.total,
        unread_count=page.unread_count,
        items=[FeedItemResponse.model_validate(item) for item in page.items],
    )


@router.get(
    "/preview",
    response_model=FeedPreviewResponse,
    summary="Preview a user's feed",
    description="The first few feed items, for compact views. Ignores page and limit.",
)
@limiter.limit(FEED_RATE_LIMIT)
async def get_feed_preview(
    request: Request,
    user_id: int,
    params: FeedQuery,
    composer: Composer,
) -> FeedPreviewResponse:
    """Top of the feed at preview size."""
    page = await composer.compose_preview(user_id, types=params.types, since=params.since)
    return FeedPreviewResponse(
        items=[FeedItemResponse.model_validate(item) for item in page.items],
        total=page.total,
        preview_since=params.since,
    )


@router.get(
    "/home",
    response_model=HomeFeedResponse,
    summary="Home screen sections",
    description=f"""
Trending, recommended and following sections, each ranked on its own and
capped at {settings.home_section_limit} items. Sections are not
deduplicated against each other.
""",
)
@limiter.limit(FEED_RATE_LIMIT)
async def get_home_feed(
    request: Request,
    user_id: int,
    composer: Composer,
) -> HomeFeedResponse:
    """Per-source home sections."""
    home = await composer.compose_home(user_id)
    return HomeFeedResponse.model_validate(home)


@router.post(
    "/mark-seen",
    response_model=MarkSeenResponse,
    summary="Mark the feed as seen",
    description="Sets the user's last-seen time to now; unread counts restart from here.",
)
@limiter.limit(WRITE_RATE_LIMIT)
def mark_feed_seen(
    request: Request,
    user_id: int,
    db: DbSession,
) -> MarkSeenResponse:
    """Record that the user has caught up with their feed."""
    user = get_user_or_404(db, user_id)
    user.last_feed_seen = utcnow()
    db.commit()
    db.refresh(user)

    logger.info(f"User {user_id} marked feed as seen")
    return MarkSeenResponse(last_feed_seen=as_utc(user.last_feed_seen))
