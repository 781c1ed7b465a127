from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index
from sqlmodel import SQLModel, Field

from ..clock import utcnow
from ..tokens import new_id


class Invite(SQLModel, table=True):
    """
    Single-use signup invite.
    Store only a token hash; the raw secret is returned once at creation time.
    """

    __tablename__ = "invites"
    __table_args__ = (Index("invites_exp_idx", "expires_at"),)

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    token_hash: str = Field(unique=True, max_length=128)

    created_by: str = Field(foreign_key="users.id", max_length=36)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
    expires_at: datetime = Field(sa_type=DateTime())

    # used_by is written before the user row exists inside the redeem
    # transaction, so it carries no FK.
    used_by: Optional[str] = Field(default=None, max_length=36)
    used_at: Optional[datetime] = Field(default=None, sa_type=DateTime())
    max_uses: int = Field(default=1)
