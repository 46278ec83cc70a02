"""
API Routers Package

This package contains FastAPI routers that handle API endpoints.

Router Structure:
- feed.py: /api/v1/users/{user_id}/feed/* endpoints
- recommendations.py: /api/v1/books/trending and /api/v1/users/{user_id}/taste

Each router is imported and registered in main.py.
"""

from app.routers.feed import router as feed_router
from app.routers.recommendations import router as recommendations_router

__all__ = [
    "feed_router",
    "recommendations_router",
]
