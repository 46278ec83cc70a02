"""
SQLAlchemy Models Package

Read models for the collaborator tables the feed engine queries.

Model Relationships:
- Author <-> Book: Many-to-Many
- Genre <-> Book: Many-to-Many
- User -> Review / Reading / Shelf -> ShelfItem: signals on books
- User -> Follow -> User: social graph
- User -> Activity: activity log

Import all models here so they are registered on Base.metadata and
available as: from app.models import Book, Review, ...
"""

# The order matters for SQLAlchemy to resolve relationships
from app.models.author import Author
from app.models.genre import Genre
from app.models.book import Book, book_authors, book_genres
from app.models.user import User
from app.models.review import Review
from app.models.reading import Reading, ReadingStatus
from app.models.shelf import Shelf, ShelfItem
from app.models.follow import Follow
from app.models.activity import Activity, ActivityAction, ActivityType

__all__ = [
    "Author",
    "Genre",
    "Book",
    "book_authors",
    "book_genres",
    "User",
    "Review",
    "Reading",
    "ReadingStatus",
    "Shelf",
    "ShelfItem",
    "Follow",
    "Activity",
    "ActivityAction",
    "ActivityType",
]
