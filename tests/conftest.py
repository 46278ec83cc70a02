"""
pytest Fixtures for Book Feed API Tests

Shared fixtures used across the test modules.

FIXTURE SCOPES:
- function (default): New instance per test function

For database tests each test gets its own SQLite file under tmp_path. The
SQL stores run queries on worker threads with one session per call, so an
in-memory database (one per connection) or a shared StaticPool connection
would not behave like the real deployment.
"""

# =============================================================================
# TEST ENVIRONMENT SETUP
# =============================================================================
# IMPORTANT: Set environment variables BEFORE importing the app
# This disables rate limiting and Redis, and keeps the default engine local
import os

os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["CACHE_ENABLED"] = "false"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"

from collections.abc import Generator
from datetime import timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.database import Base, get_db, get_session_factory
from app.main import app
from app.models import Author, Book, Genre, User
from app.services.cache import LocalCache, TieredCache
from app.utils import utcnow

# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    """
    SQLite database file private to one test.

    check_same_thread=False lets store queries run on asyncio.to_thread
    workers.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'feed.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    """Session factory the SQL stores open their sessions from."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    """Session for arranging test data."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory) -> Generator[TestClient, None, None]:
    """
    Test client wired to the per-test database.

    Both the request-scoped session and the stores' session factory are
    overridden. Entering the client runs the lifespan, which builds a fresh
    in-process result cache for every test.
    """

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# CACHE FIXTURES
# =============================================================================


@pytest.fixture
def local_cache() -> TieredCache:
    """Tiered cache without a Redis tier."""
    return TieredCache(None, LocalCache())


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================


@pytest.fixture
def sample_author(db_session: Session) -> Author:
    author = Author(name="Ursula K. Le Guin")
    db_session.add(author)
    db_session.commit()
    db_session.refresh(author)
    return author


@pytest.fixture
def sample_genre(db_session: Session) -> Genre:
    genre = Genre(name="Science Fiction")
    db_session.add(genre)
    db_session.commit()
    db_session.refresh(genre)
    return genre


@pytest.fixture
def catalog_books(
    db_session: Session,
    sample_author: Author,
    sample_genre: Genre,
) -> list[Book]:
    """
    Five books with distinct ratings: 4.5, 4.0, 3.8, 3.2, 2.9.

    updated_at is four days old, past the recency boost, so feed order
    depends on scores only.
    """
    ratings = ["4.50", "4.00", "3.80", "3.20", "2.90"]
    updated_at = utcnow() - timedelta(days=4)
    books = []
    for i, rating in enumerate(ratings):
        book = Book(
            title=f"Catalog Book {i + 1}",
            external_id=f"OL{i + 1}W",
            average_rating=Decimal(rating),
            review_count=10 * (5 - i),
            updated_at=updated_at,
            authors=[sample_author],
            genres=[sample_genre],
        )
        books.append(book)
        db_session.add(book)

    db_session.commit()
    for book in books:
        db_session.refresh(book)
    return books


@pytest.fixture
def sample_user(db_session: Session) -> User:
    user = User(username="reader", full_name="Test Reader")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def second_user(db_session: Session) -> User:
    user = User(username="friend", full_name="Ana Friend")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user
