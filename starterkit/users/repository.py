"""User persistence: the store capability and its SQLAlchemy implementation."""

import uuid
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from starterkit.infrastructure.database.repository import BaseRepository
from starterkit.users.models import UserRecord


class UserStore(Protocol):
    """Read operations the user service depends on.

    ``get_by_id`` raises :class:`sqlalchemy.exc.NoResultFound` when no live user
    has the id; any other failure is raised as a :class:`SQLAlchemyError`.
    """

    async def get_by_id(self, entity_id: uuid.UUID) -> UserRecord: ...

    async def list_paginated(self, limit: int, offset: int) -> list[UserRecord]: ...


class UserRepository(BaseRepository[UserRecord]):
    """PostgreSQL-backed :class:`UserStore`."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, UserRecord)
