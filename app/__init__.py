"""
Book Feed API Application Package

Package Structure:
- config.py: Application configuration using Pydantic Settings
- database.py: SQLAlchemy engine and session management
- main.py: FastAPI application factory and configuration
- dependencies.py: Dependency injection functions
- models/: SQLAlchemy ORM models of the tables the feed reads
- schemas/: Pydantic response schemas
- routers/: API route handlers
- services/: Candidate sources, result cache and feed composition
- utils/: Time helpers
"""

__version__ = "0.1.0"
