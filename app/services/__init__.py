"""
Services Package

Business logic kept separate from HTTP handling (routers), so it can be
tested without a server.

Current services:
- candidates.py: Provider payload types and book identity
- stores.py: Read interfaces to collaborator data and their SQL implementations
- recommendations.py: Personalized candidates (collaborative filtering)
- trending.py: Trending candidates (windowed momentum)
- social.py: Following candidates (activity of followed accounts)
- cache.py: Two-tier result cache (Redis with in-process fallback)
- feed.py: Feed composition, deduplication and ranking
- rate_limiter.py: Rate limiting with slowapi and Redis backend
"""
