"""
Test Suite for Book Feed API

Test Organization:
- conftest.py: Shared fixtures (per-test SQLite database, client, sample data)
- fakes.py: In-memory collaborator stores
- test_candidates.py: Book identity and cached payloads
- test_recommendations.py / test_trending.py / test_social.py: candidate sources
- test_cache.py: Two-tier result cache
- test_feed.py: Composition, ranking, dedupe, pagination, failure isolation
- test_stores.py: SQL stores against SQLite
- test_feed_api.py: HTTP endpoints

Running Tests:
    # Run all tests
    pytest

    # Run specific file
    pytest tests/test_feed.py

    # Run with verbose output
    pytest -v
"""
