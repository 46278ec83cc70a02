"""
Database Configuration Module

SQLAlchemy 2.0 setup for the tables the feed engine reads.

The catalog, review, reading, shelf, follow and activity tables are owned by
other services; this application only reads them (the single exception is
users.last_feed_seen, written by the mark-seen endpoint).

Sync Sessions in an Async Engine
================================
SQLAlchemy runs synchronously here (psycopg2). The feed providers are async,
so each store call is pushed onto a worker thread with asyncio.to_thread()
and opens its own short-lived session from SessionLocal. Sessions are never
shared between threads.

Session Management Pattern
==========================
Request handlers that touch the database directly use the "session per
request" pattern through the get_db() dependency.
"""

from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from app.config import get_settings

settings = get_settings()


# =============================================================================
# Database Engine
# =============================================================================
# - pool_pre_ping: Test connection health before using (prevents stale connections)
# - echo: Log all SQL statements in debug mode
# SQLite (tests, local experiments) does not accept the pool sizing arguments
# and refuses cross-thread use unless check_same_thread is disabled.

engine_kwargs: dict[str, Any] = {
    "pool_pre_ping": True,
    "echo": settings.debug,
}
if settings.is_sqlite:
    engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    engine_kwargs["pool_size"] = settings.db_pool_size
    engine_kwargs["max_overflow"] = settings.db_max_overflow

engine = create_engine(settings.database_url, **engine_kwargs)


# =============================================================================
# Session Factory
# =============================================================================

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


# =============================================================================
# Base Model Class
# =============================================================================

class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

        class Book(Base):
            __tablename__ = "books"
            ...
    """
    pass


# =============================================================================
# Dependency Injection
# =============================================================================
def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency for FastAPI.

    Code before yield creates the session, the route uses it, and the finally
    block closes it even if the handler raised.

    Yields:
        SQLAlchemy Session instance
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """
    Session factory dependency for the feed stores.

    Stores open one session per query on a worker thread, so they need the
    factory rather than a request-scoped session. Tests override this to
    point at their own engine.
    """
    return SessionLocal


# =============================================================================
# Utility Functions
# =============================================================================
def create_tables() -> None:
    """
    Create all database tables.

    Called on startup when running against SQLite (local development). In
    production the owning services manage the schema.
    """
    Base.metadata.create_all(bind=engine)
