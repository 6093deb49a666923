"""Database model for users."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from starterkit.infrastructure.database.base import BaseModel


class UserRecord(BaseModel):
    """A row of the ``users`` table.

    Soft-deleted rows stay in the table with ``deleted_at`` set and are never
    returned by the repository.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
