"""
SQL Store Integration Tests

Runs the SQLAlchemy store implementations against a SQLite file database
and checks the providers end to end on top of them.
"""

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from app.models import Activity, Book, Follow, Reading, Review, Shelf, ShelfItem, User
from app.services.recommendations import PersonalizedProvider
from app.services.social import SocialProvider
from app.services.stores import (
    SqlActivityLogStore,
    SqlCatalogStore,
    SqlInteractionStore,
    SqlSocialGraphStore,
)
from app.services.trending import TrendingProvider
from app.utils import days_ago, utcnow


def add_review(db: Session, user: User, book: Book, rating: int, hours: float = 1) -> Review:
    review = Review(
        user_id=user.id,
        book_id=book.id,
        rating=rating,
        created_at=utcnow() - timedelta(hours=hours),
    )
    db.add(review)
    db.commit()
    return review


# =============================================================================
# Catalog
# =============================================================================


class TestSqlCatalogStore:
    @pytest.mark.asyncio
    async def test_top_rated_order(self, session_factory, catalog_books):
        store = SqlCatalogStore(session_factory)

        books = await store.find_top_rated_books(10)

        assert [b.avg_rating for b in books] == [4.5, 4.0, 3.8, 3.2, 2.9]

    @pytest.mark.asyncio
    async def test_unrated_books_come_last(self, session_factory, db_session, catalog_books):
        db_session.add(Book(title="Unrated"))
        db_session.commit()
        store = SqlCatalogStore(session_factory)

        books = await store.find_top_rated_books(10)

        assert books[-1].title == "Unrated"
        assert books[-1].avg_rating is None

    @pytest.mark.asyncio
    async def test_find_by_id_projects_book(self, session_factory, catalog_books):
        store = SqlCatalogStore(session_factory)

        books = await store.find_books_by_id([catalog_books[1].id])

        assert len(books) == 1
        ref = books[0]
        assert ref.id == catalog_books[1].id
        assert ref.external_id == "OL2W"
        assert ref.authors == ["Ursula K. Le Guin"]
        assert ref.genres == ["Science Fiction"]
        assert ref.updated_at is not None and ref.updated_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_find_by_id_empty(self, session_factory):
        assert await SqlCatalogStore(session_factory).find_books_by_id([]) == []

    @pytest.mark.asyncio
    async def test_most_reviewed(self, session_factory, db_session, catalog_books):
        catalog_books[4].review_count = 500
        db_session.commit()
        store = SqlCatalogStore(session_factory)

        books = await store.find_most_reviewed_books(2)

        assert [b.id for b in books] == [catalog_books[4].id, catalog_books[0].id]

    @pytest.mark.asyncio
    async def test_excluding(self, session_factory, catalog_books):
        store = SqlCatalogStore(session_factory)

        books = await store.find_books_excluding([catalog_books[0].id], 2)

        assert [b.id for b in books] == [catalog_books[1].id, catalog_books[2].id]


# =============================================================================
# Interactions
# =============================================================================


class TestSqlInteractionStore:
    @pytest.mark.asyncio
    async def test_user_signals(self, session_factory, db_session, catalog_books, sample_user):
        add_review(db_session, sample_user, catalog_books[0], 5)
        db_session.add(Reading(user_id=sample_user.id, book_id=catalog_books[1].id, status="reading"))
        shelf = Shelf(user_id=sample_user.id, name="Favourites")
        shelf.items.append(ShelfItem(book_id=catalog_books[2].id))
        db_session.add(shelf)
        db_session.commit()
        store = SqlInteractionStore(session_factory)

        reviews = await store.find_reviews_by_user(sample_user.id)
        readings = await store.find_reading_by_user(sample_user.id)
        shelf_items = await store.find_shelf_items_by_user(sample_user.id)

        assert [(r.book_id, r.rating) for r in reviews] == [(catalog_books[0].id, 5)]
        assert reviews[0].created_at.tzinfo is not None
        assert [r.book_id for r in readings] == [catalog_books[1].id]
        assert [s.book_id for s in shelf_items] == [catalog_books[2].id]

    @pytest.mark.asyncio
    async def test_windowed_queries(
        self, session_factory, db_session, catalog_books, sample_user, second_user
    ):
        add_review(db_session, sample_user, catalog_books[0], 4, hours=2)
        add_review(db_session, second_user, catalog_books[0], 3, hours=24 * 30)
        add_review(db_session, second_user, catalog_books[1], 5, hours=3)
        store = SqlInteractionStore(session_factory)

        for_books = await store.find_reviews_for_books([catalog_books[0].id], days_ago(7))
        by_users = await store.find_reviews_by_users([second_user.id], days_ago(7))
        counts = await store.count_reviews_by_book(days_ago(7))

        assert [r.user_id for r in for_books] == [sample_user.id]
        assert [r.book_id for r in by_users] == [catalog_books[1].id]
        assert counts == {catalog_books[0].id: 1, catalog_books[1].id: 1}

    @pytest.mark.asyncio
    async def test_reading_starts(self, session_factory, db_session, catalog_books, sample_user, second_user):
        now = utcnow()
        db_session.add_all([
            Reading(user_id=sample_user.id, book_id=catalog_books[0].id, status="reading",
                    started_at=now - timedelta(days=1)),
            Reading(user_id=second_user.id, book_id=catalog_books[0].id, status="reading",
                    started_at=now - timedelta(days=2)),
            Reading(user_id=second_user.id, book_id=catalog_books[1].id, status="reading",
                    started_at=now - timedelta(days=20)),
            Reading(user_id=sample_user.id, book_id=catalog_books[2].id, status="to-read"),
        ])
        db_session.commit()
        store = SqlInteractionStore(session_factory)

        counts = await store.count_reading_starts_by_book(days_ago(7))

        assert counts == {catalog_books[0].id: 2}

    @pytest.mark.asyncio
    async def test_empty_id_lists_skip_the_query(self, session_factory):
        store = SqlInteractionStore(session_factory)
        assert await store.find_reviews_for_books([], days_ago(7)) == []
        assert await store.find_reviews_by_users([], days_ago(7)) == []
        assert await store.find_reading_by_users([], days_ago(7)) == []


# =============================================================================
# Social
# =============================================================================


class TestSqlSocialStores:
    @pytest.mark.asyncio
    async def test_following_and_activity(
        self, session_factory, db_session, catalog_books, sample_user, second_user
    ):
        db_session.add(Follow(follower_id=sample_user.id, followed_id=second_user.id))
        db_session.add_all([
            Activity(actor_id=second_user.id, type="review", action="created",
                     book_id=catalog_books[0].id, meta={"rating": 4},
                     created_at=utcnow() - timedelta(hours=1)),
            Activity(actor_id=second_user.id, type="follow", action="created",
                     created_at=utcnow() - timedelta(hours=2)),
        ])
        db_session.commit()

        graph = SqlSocialGraphStore(session_factory)
        log = SqlActivityLogStore(session_factory)

        assert await graph.find_following(sample_user.id) == [second_user.id]
        records = await log.find_recent_activity(
            [second_user.id], ["review", "reading", "shelf"], days_ago(7), 10
        )

        assert len(records) == 1
        assert records[0].actor_name == "Ana Friend"
        assert records[0].rating == 4
        assert records[0].book.id == catalog_books[0].id

    @pytest.mark.asyncio
    async def test_social_provider_end_to_end(
        self, session_factory, db_session, catalog_books, sample_user, second_user
    ):
        db_session.add(Follow(follower_id=sample_user.id, followed_id=second_user.id))
        db_session.add(Activity(
            actor_id=second_user.id, type="reading", action="finished",
            book_id=catalog_books[3].id, created_at=utcnow() - timedelta(hours=5),
        ))
        db_session.commit()
        provider = SocialProvider(
            SqlSocialGraphStore(session_factory), SqlActivityLogStore(session_factory)
        )

        updates = await provider.get_followed_users_updates(sample_user.id)

        assert [u.book.id for u in updates] == [catalog_books[3].id]
        assert updates[0].score == 0.75


# =============================================================================
# Providers on SQL
# =============================================================================


class TestProvidersOnSql:
    @pytest.mark.asyncio
    async def test_cold_start_from_catalog(self, session_factory, catalog_books, sample_user):
        provider = PersonalizedProvider(
            SqlInteractionStore(session_factory), SqlCatalogStore(session_factory)
        )

        picks = await provider.get_personalized_picks(sample_user.id, limit=10)

        assert [p.book.avg_rating for p in picks] == [4.5, 4.0, 3.8, 3.2, 2.9]
        assert {p.reason for p in picks} == {"popular_fallback"}

    @pytest.mark.asyncio
    async def test_trending_from_reviews(
        self, session_factory, db_session, catalog_books, sample_user, second_user
    ):
        add_review(db_session, sample_user, catalog_books[3], 4)
        add_review(db_session, second_user, catalog_books[3], 5)
        add_review(db_session, second_user, catalog_books[4], 2)
        provider = TrendingProvider(
            SqlInteractionStore(session_factory), SqlCatalogStore(session_factory)
        )

        picks = await provider.get_trending_books(limit=5)

        assert [p.book.id for p in picks] == [catalog_books[3].id, catalog_books[4].id]
        assert picks[0].trending_score == pytest.approx(0.7)
        assert picks[0].recent_reviews == 2
