"""
Feed Pydantic Schemas

Response models for the feed endpoints. They are validated straight from the
service dataclasses (FeedItem, BookRef, ...) with from_attributes, so the
internal BookRef fields (genres, updated_at) never reach clients.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.services.candidates import SourceSignal


class BookRefResponse(BaseModel):
    """Book as shown inside a feed item."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    external_id: str | None = None
    title: str
    authors: list[str] = Field(default_factory=list)
    cover_url: str | None = None
    avg_rating: float | None = Field(
        default=None,
        description="Average rating (1-5)",
        examples=[4.2],
    )


class FeedItemResponse(BaseModel):
    """
    One feed entry.

    id is generated per response and is not stable across requests.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    source: SourceSignal
    score: float = Field(description="Source relevance score (0-1)")
    rank: float = Field(description="Blend of score and recency used for ordering")
    created_at: datetime
    friendly_reason: str = Field(examples=["Because similar readers liked it (3)"])
    reason: str | None = Field(default=None, examples=["cf_cooccur:3"])
    book: BookRefResponse


class FeedResponse(BaseModel):
    """
    Paginated feed.

    total counts items after deduplication and the `since` filter.
    """

    page: int
    limit: int
    total: int
    unread_count: int = 0
    items: list[FeedItemResponse]


class FeedPreviewResponse(BaseModel):
    items: list[FeedItemResponse]
    total: int
    preview_since: datetime | None = None


class HomeFeedResponse(BaseModel):
    """Independent per-source sections; a book may appear in several."""

    model_config = ConfigDict(from_attributes=True)

    trending: list[FeedItemResponse] = Field(default_factory=list)
    recommended: list[FeedItemResponse] = Field(default_factory=list)
    following: list[FeedItemResponse] = Field(default_factory=list)


class MarkSeenResponse(BaseModel):
    success: bool = True
    last_feed_seen: datetime


class TrendingBookItem(BaseModel):
    """Trending book with its momentum counts."""

    model_config = ConfigDict(from_attributes=True)

    book: BookRefResponse
    trending_score: float = Field(description="Normalized momentum (0-1)")
    recent_reviews: int = 0
    reading_starts: int = 0
    fallback: bool = Field(
        default=False,
        description="True when nothing trended in the window and popular books are shown",
    )


class TrendingBooksResponse(BaseModel):
    total: int
    window_days: int
    items: list[TrendingBookItem]


class TasteResponse(BaseModel):
    """Genre shares over a user's reading history."""

    user_id: int
    genres: dict[str, float] = Field(
        default_factory=dict,
        examples=[{"Fantasy": 0.5, "Science Fiction": 0.5}],
    )
