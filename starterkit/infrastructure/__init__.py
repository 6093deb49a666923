"""Infrastructure layer for data persistence.

Provides the concrete PostgreSQL-backed store used by the service layer:
async SQLAlchemy engine and sessions, declarative models and repositories.
"""
