"""
Tests for Personalized Recommendations

Algorithms tested:
- Cold start (top-rated catalog books)
- Collaborative filtering (co-occurrence with similar readers)
- Unseen-book fallback when no neighbourhood exists
- Genre taste vector
"""

from datetime import timedelta

import pytest

from app.config import Settings
from app.services.candidates import REASON_FALLBACK_POPULAR, REASON_POPULAR_FALLBACK
from app.services.recommendations import (
    CandidateStats,
    PersonalizedProvider,
    cooccurrence_reason,
    score_candidate,
)
from app.services.stores import ReadingSignal, ReviewSignal, ShelfSignal
from app.utils import utcnow
from tests.fakes import FakeCatalogStore, FakeInteractionStore, hours_ago, make_book


def review(user_id: int, book_id: int, rating: int = 4, hours: float = 1) -> ReviewSignal:
    return ReviewSignal(user_id=user_id, book_id=book_id, rating=rating, created_at=hours_ago(hours))


def reading(user_id: int, book_id: int, hours: float = 1) -> ReadingSignal:
    return ReadingSignal(user_id=user_id, book_id=book_id, status="reading", updated_at=hours_ago(hours))


# =============================================================================
# Scoring
# =============================================================================


class TestScoreCandidate:
    def test_saturated_signal_scores_one(self):
        now = utcnow()
        stats = CandidateStats(count=10, rating_sum=5, rating_count=1, last_signal=now)
        assert score_candidate(stats, now) == pytest.approx(1.0)

    def test_half_of_everything(self):
        now = utcnow()
        stats = CandidateStats(
            count=5, rating_sum=5, rating_count=2, last_signal=now - timedelta(days=45)
        )
        assert score_candidate(stats, now) == pytest.approx(0.5)

    def test_old_unrated_signal_only_counts_frequency(self):
        now = utcnow()
        stats = CandidateStats(count=20, last_signal=now - timedelta(days=400))
        assert score_candidate(stats, now) == pytest.approx(0.55)

    def test_reason_rounds_half_up(self):
        assert cooccurrence_reason(0.6) == "cf_cooccur:1"
        assert cooccurrence_reason(2.5) == "cf_cooccur:3"
        assert cooccurrence_reason(2.0) == "cf_cooccur:2"

    def test_average_rating_ignores_unrated_signals(self):
        stats = CandidateStats()
        stats.add(1.0, utcnow(), rating=4)
        stats.add(0.6, utcnow())
        assert stats.avg_rating == 4
        assert stats.count == pytest.approx(1.6)


# =============================================================================
# Cold Start
# =============================================================================


class TestColdStart:
    @pytest.mark.asyncio
    async def test_new_user_gets_top_rated_catalog(self):
        """A user with no history sees the catalog by descending rating."""
        ratings = {1: 3.8, 2: 4.5, 3: 2.9, 4: 4.0, 5: 3.2}
        catalog = FakeCatalogStore([make_book(i, avg_rating=r) for i, r in ratings.items()])
        provider = PersonalizedProvider(FakeInteractionStore(), catalog)

        picks = await provider.get_personalized_picks(user_id=99, limit=10)

        assert [p.book.avg_rating for p in picks] == [4.5, 4.0, 3.8, 3.2, 2.9]
        assert all(p.reason == REASON_POPULAR_FALLBACK for p in picks)
        assert all(p.score == pytest.approx(0.2) for p in picks)

    @pytest.mark.asyncio
    async def test_cold_start_score_is_configurable(self):
        catalog = FakeCatalogStore([make_book(1, avg_rating=4.0)])
        provider = PersonalizedProvider(
            FakeInteractionStore(), catalog, Settings(cold_start_score=0.35)
        )

        picks = await provider.get_personalized_picks(user_id=1)

        assert picks[0].score == pytest.approx(0.35)

    @pytest.mark.asyncio
    async def test_empty_catalog_gives_nothing(self):
        provider = PersonalizedProvider(FakeInteractionStore(), FakeCatalogStore())
        assert await provider.get_personalized_picks(user_id=1) == []


# =============================================================================
# Collaborative Filtering
# =============================================================================


class TestCollaborativeFiltering:
    @pytest.fixture
    def catalog(self) -> FakeCatalogStore:
        return FakeCatalogStore([
            make_book(10, avg_rating=4.0),
            make_book(20, avg_rating=3.0),
            make_book(30, avg_rating=4.9),
            make_book(40, avg_rating=4.8),
        ])

    @pytest.mark.asyncio
    async def test_books_liked_by_similar_readers(self, catalog):
        interactions = FakeInteractionStore(
            reviews=[
                review(1, 10),
                review(2, 10),
                review(2, 20, rating=5),
                review(3, 10),
                review(3, 20, rating=4),
            ],
            readings=[reading(2, 30)],
        )
        provider = PersonalizedProvider(interactions, catalog)

        picks = await provider.get_personalized_picks(user_id=1)

        assert [p.book.id for p in picks] == [20, 30]
        assert picks[0].reason == "cf_cooccur:2"
        assert picks[1].reason == "cf_cooccur:1"
        assert picks[0].score > picks[1].score
        assert picks[0].signal_at is not None

    @pytest.mark.asyncio
    async def test_seed_books_are_never_recommended(self, catalog):
        interactions = FakeInteractionStore(
            reviews=[review(1, 10), review(2, 10), review(2, 20)],
            readings=[reading(1, 20)],
        )
        provider = PersonalizedProvider(interactions, catalog)

        picks = await provider.get_personalized_picks(user_id=1)

        assert 10 not in {p.book.id for p in picks}
        assert 20 not in {p.book.id for p in picks}

    @pytest.mark.asyncio
    async def test_signals_outside_window_are_ignored(self, catalog):
        old = 24 * 200
        interactions = FakeInteractionStore(
            reviews=[review(1, 10), review(2, 10, hours=old), review(2, 20)],
        )
        provider = PersonalizedProvider(interactions, catalog)

        picks = await provider.get_personalized_picks(user_id=1)

        assert all(p.reason == REASON_FALLBACK_POPULAR for p in picks)

    @pytest.mark.asyncio
    async def test_no_similar_readers_falls_back_to_unseen_books(self, catalog):
        interactions = FakeInteractionStore(
            reviews=[review(1, 10)],
            shelf_items={1: [ShelfSignal(book_id=30, created_at=hours_ago(2))]},
        )
        provider = PersonalizedProvider(interactions, catalog)

        picks = await provider.get_personalized_picks(user_id=1)

        assert [p.book.id for p in picks] == [40, 20]
        assert all(p.reason == REASON_FALLBACK_POPULAR for p in picks)
        assert all(p.score == pytest.approx(0.2) for p in picks)

    @pytest.mark.asyncio
    async def test_limit_is_respected(self, catalog):
        interactions = FakeInteractionStore(
            reviews=[review(1, 10), review(2, 10), review(2, 20), review(2, 30), review(2, 40)],
        )
        provider = PersonalizedProvider(interactions, catalog)

        picks = await provider.get_personalized_picks(user_id=1, limit=2)

        assert len(picks) == 2

    @pytest.mark.asyncio
    async def test_similar_users_ranked_by_overlap(self):
        interactions = FakeInteractionStore(
            reviews=[review(5, 1), review(5, 2), review(6, 2), review(7, 1), review(7, 2)],
        )
        provider = PersonalizedProvider(interactions, FakeCatalogStore())

        similar = await provider.find_similar_users([1, 2], user_id=6)

        assert similar == [5, 7]

    @pytest.mark.asyncio
    async def test_seed_order_reviews_then_readings_then_shelves(self):
        interactions = FakeInteractionStore(
            reviews=[review(1, 3)],
            readings=[reading(1, 2), reading(1, 3)],
            shelf_items={1: [ShelfSignal(book_id=1, created_at=hours_ago(1))]},
        )
        provider = PersonalizedProvider(interactions, FakeCatalogStore())

        result = await provider.get_user_interactions(1)

        assert result.book_ids == [3, 2, 1]


# =============================================================================
# Taste Vector
# =============================================================================


class TestTasteVector:
    @pytest.mark.asyncio
    async def test_genre_shares(self):
        catalog = FakeCatalogStore([
            make_book(1, genres=["Fantasy"]),
            make_book(2, genres=["Fantasy", "Science Fiction"]),
            make_book(3, genres=["Mystery"]),
        ])
        interactions = FakeInteractionStore(reviews=[review(1, 1), review(1, 2)])
        provider = PersonalizedProvider(interactions, catalog)

        taste = await provider.get_user_taste_vector(1)

        assert taste == {"Fantasy": pytest.approx(0.6667), "Science Fiction": pytest.approx(0.3333)}
        assert sum(taste.values()) == pytest.approx(1.0, abs=1e-3)

    @pytest.mark.asyncio
    async def test_no_history_is_empty(self):
        provider = PersonalizedProvider(FakeInteractionStore(), FakeCatalogStore())
        assert await provider.get_user_taste_vector(1) == {}
