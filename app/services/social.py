"""
Social Activity Service

Builds feed candidates from what followed accounts have been doing:
reviews, reading starts and finishes, and books added to shelves.

There is no scoring model here. Each activity gets a fixed base score by
kind; social provenance is trusted more than algorithmic relevance, which
is why the composer lets these candidates win deduplication.
"""

import logging
from datetime import datetime

from app.config import Settings, get_settings
from app.models import ActivityAction, ActivityType
from app.services.candidates import FollowAction, FollowingUpdate
from app.services.stores import ActivityLogStore, ActivityRecord, SocialGraphStore
from app.utils import days_ago

logger = logging.getLogger(__name__)

FINISHED_SCORE = 0.75
STARTED_SCORE = 0.6
SHELVED_SCORE = 0.6
# Reviews span 0.6 (1 star) to 0.9 (5 stars); unknown ratings count as high-signal
REVIEW_BASE_SCORE = 0.6
REVIEW_RATING_SPAN = 0.3
REVIEW_UNRATED_SCORE = 0.9

# (activity type, action) -> feed action
_ACTION_MAP: dict[tuple[str, str], FollowAction] = {
    (ActivityType.REVIEW.value, ActivityAction.CREATED.value): FollowAction.REVIEW,
    (ActivityType.READING.value, ActivityAction.STARTED.value): FollowAction.STARTED,
    (ActivityType.READING.value, ActivityAction.FINISHED.value): FollowAction.FINISHED,
    (ActivityType.SHELF.value, ActivityAction.ADDED.value): FollowAction.SHELVED,
}

_ACTIVITY_TYPES = [ActivityType.REVIEW.value, ActivityType.READING.value, ActivityType.SHELF.value]


def social_score(action: FollowAction, rating: int | None = None) -> float:
    """Base score for a followed account's activity."""
    if action == FollowAction.REVIEW:
        if rating is None:
            return REVIEW_UNRATED_SCORE
        clamped = min(5, max(1, rating))
        return REVIEW_BASE_SCORE + REVIEW_RATING_SPAN * clamped / 5
    if action == FollowAction.FINISHED:
        return FINISHED_SCORE
    if action == FollowAction.STARTED:
        return STARTED_SCORE
    return SHELVED_SCORE


def to_following_update(record: ActivityRecord) -> FollowingUpdate | None:
    """Translate an activity-log entry; None for activities the feed ignores."""
    action = _ACTION_MAP.get((str(record.type), str(record.action)))
    if action is None or record.book is None:
        return None
    return FollowingUpdate(
        book=record.book,
        actor_id=record.actor_id,
        actor_name=record.actor_name,
        action=action,
        score=social_score(action, record.rating),
        created_at=record.created_at,
        message=record.message,
        rating=record.rating,
    )


class SocialProvider:
    """
    Following candidate source.

    Usage:
        provider = SocialProvider(graph, activity_log)
        updates = await provider.get_followed_users_updates(user_id=42, limit=100)
    """

    def __init__(
        self,
        graph: SocialGraphStore,
        activity_log: ActivityLogStore,
        settings: Settings | None = None,
    ) -> None:
        self.graph = graph
        self.activity_log = activity_log
        self.settings = settings or get_settings()

    async def get_followed_users_updates(
        self,
        user_id: int,
        limit: int = 100,
        since: datetime | None = None,
    ) -> list[FollowingUpdate]:
        """
        Recent activity of the accounts `user_id` follows, newest first.

        Args:
            user_id: The reader whose follow edges are used
            limit: Maximum number of updates
            since: Only activity after this instant (default: social window)
        """
        following = await self.graph.find_following(user_id)
        if not following:
            return []

        window_start = since or days_ago(self.settings.social_window_days)
        records = await self.activity_log.find_recent_activity(
            actor_ids=following,
            types=_ACTIVITY_TYPES,
            since=window_start,
            limit=limit,
        )

        updates = [u for u in map(to_following_update, records) if u is not None]
        updates.sort(key=lambda u: u.created_at, reverse=True)
        logger.debug(
            f"Following updates for user {user_id}: {len(updates)} "
            f"from {len(following)} followed accounts"
        )
        return updates[:limit]
