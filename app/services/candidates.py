"""
Feed Candidate Types

Every feed source returns its own payload type; the composer turns each of
them into a single Candidate shape before deduplication and ranking.

    PersonalPick     - collaborative filtering (or its fallbacks)
    TrendingPick     - windowed popularity (or the global popularity fallback)
    FollowingUpdate  - an activity performed by a followed account

PersonalPick and TrendingPick round-trip through the result cache as JSON,
so they carry a to_dict()/from_dict() pair.

Book Identity
=============
Candidates from different sources are merged by book_identity_key():
catalog id first, then external catalog id, then a title/first-author
composite. The order matters: changing it changes which candidates collide.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from app.utils import parse_timestamp

# Reason codes emitted by the providers
REASON_COOCCURRENCE = "cf_cooccur"
REASON_POPULAR_FALLBACK = "popular_fallback"
REASON_FALLBACK_POPULAR = "fallback_popular"
REASON_TRENDING_FALLBACK = "trending_fallback"

IDENTITY_TITLE_CHARS = 60
IDENTITY_AUTHOR_CHARS = 40


class SourceSignal(StrEnum):
    """Feed sources, also the values accepted in the `types` filter."""

    PERSONAL = "personal"
    TRENDING = "trending"
    FOLLOWING = "following"


class FollowAction(StrEnum):
    """Social activities surfaced in the feed."""

    REVIEW = "review"
    STARTED = "started"
    FINISHED = "finished"
    SHELVED = "shelved"


# =============================================================================
# Book Projection
# =============================================================================


@dataclass
class BookRef:
    """
    Minimal, read-only projection of a catalog book.

    genres and updated_at are internal: genres feed the taste vector and
    updated_at is the timestamp of last resort when normalizing candidates.
    """

    id: int | None
    title: str
    authors: list[str] = field(default_factory=list)
    external_id: str | None = None
    cover_url: str | None = None
    avg_rating: float | None = None
    genres: list[str] = field(default_factory=list)
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "authors": list(self.authors),
            "external_id": self.external_id,
            "cover_url": self.cover_url,
            "avg_rating": self.avg_rating,
            "genres": list(self.genres),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BookRef":
        return cls(
            id=data["id"],
            title=data["title"],
            authors=list(data.get("authors") or []),
            external_id=data.get("external_id"),
            cover_url=data.get("cover_url"),
            avg_rating=data.get("avg_rating"),
            genres=list(data.get("genres") or []),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


def book_identity_key(book: BookRef) -> str:
    """
    Logical identity of a book across feed sources.

    Examples:
        BookRef(id=7, ...)                         -> "id:7"
        BookRef(id=None, external_id="OL1W", ...)  -> "ext:OL1W"
        BookRef(id=None, title="Dune", authors=["Frank Herbert"])
                                                   -> "T:Dune|A:Frank Herbert"
    """
    if book.id is not None:
        return f"id:{book.id}"
    if book.external_id:
        return f"ext:{book.external_id}"
    first_author = book.authors[0] if book.authors else ""
    title = book.title or ""
    return f"T:{title[:IDENTITY_TITLE_CHARS]}|A:{first_author[:IDENTITY_AUTHOR_CHARS]}"


# =============================================================================
# Provider Payloads
# =============================================================================


@dataclass
class PersonalPick:
    """
    A personalized recommendation.

    signal_at is the most recent co-occurring signal behind the pick; it is
    None for fallback picks, which are not backed by any signal.
    """

    book: BookRef
    score: float
    reason: str
    signal_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "book": self.book.to_dict(),
            "score": self.score,
            "reason": self.reason,
            "signal_at": self.signal_at.isoformat() if self.signal_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PersonalPick":
        return cls(
            book=BookRef.from_dict(data["book"]),
            score=float(data["score"]),
            reason=data["reason"],
            signal_at=parse_timestamp(data.get("signal_at")),
        )


@dataclass
class TrendingPick:
    """A book with recent momentum, or a globally popular one when fallback is set."""

    book: BookRef
    trending_score: float
    recent_reviews: int = 0
    reading_starts: int = 0
    fallback: bool = False

    @property
    def reason(self) -> str | None:
        return REASON_TRENDING_FALLBACK if self.fallback else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "book": self.book.to_dict(),
            "trending_score": self.trending_score,
            "recent_reviews": self.recent_reviews,
            "reading_starts": self.reading_starts,
            "fallback": self.fallback,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrendingPick":
        return cls(
            book=BookRef.from_dict(data["book"]),
            trending_score=float(data["trending_score"]),
            recent_reviews=int(data.get("recent_reviews", 0)),
            reading_starts=int(data.get("reading_starts", 0)),
            fallback=bool(data.get("fallback", False)),
        )


@dataclass
class FollowingUpdate:
    """Something a followed account did with a book. Never cached."""

    book: BookRef
    actor_id: int
    actor_name: str
    action: FollowAction
    score: float
    created_at: datetime
    message: str | None = None
    rating: int | None = None


ProviderCandidate = PersonalPick | TrendingPick | FollowingUpdate


# =============================================================================
# Normalized Candidate
# =============================================================================


@dataclass
class Candidate:
    """
    A provider payload in the composer's common shape.

    Created by the normalization step, consumed by dedupe and ranking.
    """

    book: BookRef
    source: SourceSignal
    score: float
    created_at: datetime
    friendly_reason: str
    reason: str | None = None
    fallback: bool = False

    @property
    def identity_key(self) -> str:
        return book_identity_key(self.book)
