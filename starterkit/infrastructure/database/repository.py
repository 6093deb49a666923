"""Base repository for read access to soft-deletable models.

Repositories follow the store contract used by the service layer:

- lookups by id raise :class:`sqlalchemy.exc.NoResultFound` when no live row
  matches
- any other failure surfaces as the driver's :class:`SQLAlchemyError`

Translating those into domain errors is the service layer's job.
"""

import uuid

from loguru import logger
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from starterkit.infrastructure.database.base import BaseModel


class BaseRepository[T: BaseModel]:
    """Generic async repository over a model inheriting from BaseModel.

    Args:
        session: The async SQLAlchemy session to use for operations.
        model_class: The SQLAlchemy model class this repository manages.

    Example:
        class UserRepository(BaseRepository[UserRecord]):
            def __init__(self, session: AsyncSession) -> None:
                super().__init__(session, UserRecord)
    """

    def __init__(self, session: AsyncSession, model_class: type[T]) -> None:
        self.session = session
        self.model_class = model_class

    def _live(self) -> Select[tuple[T]]:
        """Select statement restricted to rows that are not soft-deleted."""
        return select(self.model_class).where(self.model_class.deleted_at.is_(None))

    async def get_by_id(self, entity_id: uuid.UUID) -> T:
        """Retrieve a live instance by its ID.

        Args:
            entity_id: The primary key of the row to retrieve.

        Returns:
            T: The matching instance.

        Raises:
            NoResultFound: If no live row has this ID.
        """
        logger.debug("Fetching {} by ID: {}", self.model_class.__name__, entity_id)

        stmt = self._live().where(self.model_class.id == entity_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def list_paginated(self, limit: int, offset: int) -> list[T]:
        """Retrieve live instances, most recently created first.

        Args:
            limit: Maximum number of rows to return.
            offset: Number of rows to skip.

        Returns:
            list[T]: Up to ``limit`` instances.
        """
        logger.debug(
            "Fetching {} page - limit: {}, offset: {}",
            self.model_class.__name__,
            limit,
            offset,
        )

        stmt = (
            self._live()
            .order_by(self.model_class.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
