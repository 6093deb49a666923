"""User service: pagination bounds and error translation.

The service is the only place that

- enforces the pagination invariants before the store is called
- turns store failures into domain errors

so handlers never see storage exceptions and the store never sees an
out-of-range page.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger
from sqlalchemy.exc import NoResultFound, SQLAlchemyError

from starterkit.core.constants import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from starterkit.core.exceptions import InternalError, NotFoundError
from starterkit.users.schemas import User

if TYPE_CHECKING:
    from loguru import Logger

    from starterkit.users.repository import UserStore


@dataclass(frozen=True, slots=True)
class Pagination:
    """Page bounds that satisfy ``0 < limit <= 100`` and ``offset >= 0``."""

    limit: int
    offset: int


@dataclass(frozen=True, slots=True)
class UserPage:
    """Users returned for a page request together with the bounds applied."""

    users: list[User]
    limit: int
    offset: int


def clamp_pagination(limit: int | None, offset: int | None) -> Pagination:
    """Bring requested page bounds into range.

    Out-of-range values are corrected rather than rejected: a missing or
    non-positive limit becomes the default, a limit above the maximum becomes
    the maximum, and a missing or negative offset becomes zero.

    Examples:
        >>> clamp_pagination(500, -5)
        Pagination(limit=100, offset=0)
        >>> clamp_pagination(None, None)
        Pagination(limit=20, offset=0)
    """
    if limit is None or limit <= 0:
        limit = DEFAULT_PAGE_LIMIT
    elif limit > MAX_PAGE_LIMIT:
        limit = MAX_PAGE_LIMIT

    if offset is None or offset < 0:
        offset = 0

    return Pagination(limit=limit, offset=offset)


class UserService:
    """Read access to users.

    Args:
        store: Any :class:`UserStore` implementation.
        log: Request logger; defaults to the process logger.
    """

    def __init__(self, store: UserStore, log: Logger | None = None) -> None:
        self.store = store
        self.log = log or logger

    async def get_by_id(self, user_id: uuid.UUID) -> User:
        """Fetch a single live user.

        Raises:
            NotFoundError: If no live user has this id.
            InternalError: If the store fails for any other reason.
        """
        try:
            record = await self.store.get_by_id(user_id)
        except NoResultFound as e:
            raise NotFoundError(
                "user not found", context={"user_id": str(user_id)}
            ) from e
        except SQLAlchemyError as e:
            self.log.opt(exception=e).error(
                "Failed to fetch user {}", user_id, operation="get_by_id"
            )
            raise InternalError(
                "failed to fetch user",
                context={"user_id": str(user_id)},
                cause=e,
            ) from e

        return User.model_validate(record)

    async def list_users(
        self, limit: int | None = None, offset: int | None = None
    ) -> UserPage:
        """List live users, most recently created first.

        An empty page is a normal result.

        Raises:
            InternalError: If the store fails.
        """
        page = clamp_pagination(limit, offset)

        try:
            records = await self.store.list_paginated(page.limit, page.offset)
        except SQLAlchemyError as e:
            self.log.opt(exception=e).error(
                "Failed to list users",
                operation="list_users",
                limit=page.limit,
                offset=page.offset,
            )
            raise InternalError(
                "failed to list users",
                context={"limit": page.limit, "offset": page.offset},
                cause=e,
            ) from e

        return UserPage(
            users=[User.model_validate(record) for record in records],
            limit=page.limit,
            offset=page.offset,
        )
