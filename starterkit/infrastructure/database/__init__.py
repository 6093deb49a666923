"""Database infrastructure with async PostgreSQL and the repository pattern.

Core components:
- **base**: Declarative base and common model fields
- **session**: Async engine and session management
- **repository**: Generic read repository honouring soft deletion
- **dependencies**: FastAPI dependency injection helpers
"""

from starterkit.infrastructure.database.base import Base, BaseModel
from starterkit.infrastructure.database.dependencies import DatabaseSession, get_db
from starterkit.infrastructure.database.repository import BaseRepository
from starterkit.infrastructure.database.session import (
    check_database_connection,
    close_database,
    create_database_engine,
    get_async_session,
    get_engine,
)

__all__ = [
    "Base",
    "BaseModel",
    "BaseRepository",
    "DatabaseSession",
    "check_database_connection",
    "close_database",
    "create_database_engine",
    "get_async_session",
    "get_db",
    "get_engine",
]
