"""HTTP handlers for the users resource.

Handlers only decode path and query parameters, call :class:`UserService` and
return its result. Domain errors propagate to the exception handlers registered
in :mod:`starterkit.api.middleware.error_handler`, which map them to status
codes.
"""

import re
import uuid
from typing import Annotated, Final

from fastapi import APIRouter, Depends, Query

from starterkit.api.dependencies import RequestCorrelation
from starterkit.core.constants import INT64_MAX, INT64_MIN
from starterkit.core.exceptions import ValidationError
from starterkit.infrastructure.database.dependencies import DatabaseSession
from starterkit.users.repository import UserRepository, UserStore
from starterkit.users.schemas import User, UserListResponse
from starterkit.users.service import UserService

router = APIRouter(prefix="/users", tags=["users"])

_INTEGER_PATTERN: Final[re.Pattern[str]] = re.compile(r"[+-]?[0-9]+")


def get_user_store(db: DatabaseSession) -> UserStore:
    """Provide the database-backed user store for the current request."""
    return UserRepository(db)


def get_user_service(
    store: Annotated[UserStore, Depends(get_user_store)],
    context: RequestCorrelation,
) -> UserService:
    """Provide a user service that logs through the request logger."""
    return UserService(store, log=context.logger)


UserServiceDep = Annotated[UserService, Depends(get_user_service)]


def _parse_int(value: str | None, name: str) -> int | None:
    """Parse an optional integer query parameter; empty counts as absent.

    Only an optional sign followed by ASCII digits is accepted, and the value
    must fit in a signed 64-bit integer.
    """
    if value is None or value == "":
        return None

    parsed: int | None = None
    if _INTEGER_PATTERN.fullmatch(value):
        try:
            parsed = int(value)
        except ValueError:
            # Longer than the interpreter's integer string limit
            parsed = None

    if parsed is None or not INT64_MIN <= parsed <= INT64_MAX:
        raise ValidationError(f"invalid {name} parameter", context={name: value})
    return parsed


def parse_page_request(
    limit: Annotated[str | None, Query(description="Page size (1-100)")] = None,
    offset: Annotated[str | None, Query(description="Users to skip")] = None,
) -> tuple[int | None, int | None]:
    """Decode ``limit`` and ``offset``; range checks are left to the service."""
    return _parse_int(limit, "limit"), _parse_int(offset, "offset")


@router.get("", response_model=UserListResponse)
async def list_users(
    service: UserServiceDep,
    page: Annotated[tuple[int | None, int | None], Depends(parse_page_request)],
) -> UserListResponse:
    """List users, most recently created first.

    The response echoes the limit and offset actually applied.
    """
    limit, offset = page
    result = await service.list_users(limit, offset)
    return UserListResponse(
        users=result.users, limit=result.limit, offset=result.offset
    )


@router.get("/{user_id}", response_model=User)
async def get_user(user_id: str, service: UserServiceDep) -> User:
    """Fetch a single user by id."""
    try:
        parsed_id = uuid.UUID(user_id)
    except ValueError as e:
        raise ValidationError(
            "invalid user ID format", context={"user_id": user_id}, cause=e
        ) from e

    return await service.get_by_id(parsed_id)
