from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, text
from sqlmodel import SQLModel, Field

from ..clock import utcnow
from ..tokens import new_id


class UserRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    USER = "user"


PRIVILEGED_ROLES = {UserRole.OWNER.value, UserRole.ADMIN.value}


class User(SQLModel, table=True):
    """
    An account.

    Notes:
    - Exactly one owner: enforced by the partial unique index below, not by
      a read before the insert.
    - password_hash is nullable (the bootstrapped owner has none).
    """

    __tablename__ = "users"
    __table_args__ = (
        Index(
            "users_single_owner_idx",
            "role",
            unique=True,
            sqlite_where=text("role = 'owner'"),
            postgresql_where=text("role = 'owner'"),
        ),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    email: Optional[str] = Field(default=None, unique=True)
    display_name: str
    # stored as the plain value ("owner" | "admin" | "user"); the partial index matches on it
    role: str = Field(default=UserRole.USER.value, max_length=16)
    password_hash: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
