"""Response models for the users API."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class User(BaseModel):
    """Read projection of a user, as returned to clients."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID = Field(
        ...,
        description="Unique user identifier",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )
    email: str = Field(..., description="Email address", examples=["ada@example.com"])
    name: str = Field(..., description="Display name", examples=["Ada Lovelace"])
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    updated_at: datetime = Field(..., description="Last update timestamp (UTC)")


class UserListResponse(BaseModel):
    """A page of users with the pagination values actually applied."""

    users: list[User] = Field(default_factory=list, description="Users on this page")
    limit: int = Field(..., description="Effective page size", examples=[20])
    offset: int = Field(..., description="Effective number of skipped users")
