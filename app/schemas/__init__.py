"""
Pydantic Schemas Package

Response models for the feed API.

Schemas are kept separate from the service dataclasses so the API controls
exactly what is exposed: BookRef's internal fields (genres, updated_at) stay
out of feed responses.
"""

from app.schemas.feed import (
    BookRefResponse,
    FeedItemResponse,
    FeedPreviewResponse,
    FeedResponse,
    HomeFeedResponse,
    MarkSeenResponse,
    TasteResponse,
    TrendingBookItem,
    TrendingBooksResponse,
)

__all__ = [
    "BookRefResponse",
    "FeedItemResponse",
    "FeedResponse",
    "FeedPreviewResponse",
    "HomeFeedResponse",
    "MarkSeenResponse",
    "TrendingBookItem",
    "TrendingBooksResponse",
    "TasteResponse",
]
