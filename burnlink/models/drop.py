from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import SQLModel, Field

from ..clock import utcnow
from ..tokens import new_id


class DropKind(str, Enum):
    TEXT = "text"
    URL = "url"


class DropStatus(str, Enum):
    """
    Derived on read from revoked_at / expires_at / used_views. Never stored.
    """

    ACTIVE = "active"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"
    REVOKED = "revoked"


class Drop(SQLModel, table=True):
    """
    An ephemeral note or redirect, reachable by `token` until it is revoked,
    expires, or runs out of views.

    Notes:
    - token, ttl_ms, max_views and expires_at are fixed at creation.
    - used_views only moves through the conditional UPDATE in services.drops.consume.
    - revoked_at / first_viewed_at / exhausted_at are set at most once.
    - Rows are never deleted; the closed-at timestamps carry the history.
    """

    __tablename__ = "drops"
    __table_args__ = (
        Index("drops_token_idx", "token"),
        Index("drops_state_idx", "expires_at", "revoked_at", "used_views", "max_views"),
        Index("drops_owner_idx", "owner_id"),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    token: str = Field(unique=True, max_length=64)

    owner_id: Optional[str] = Field(default=None, max_length=36)
    # "text" | "url"
    kind: str = Field(default=DropKind.TEXT.value, max_length=16)

    title: str = Field(sa_column=Column(Text, nullable=False))
    # raw text for kind=text, absolute URL for kind=url
    body: str = Field(sa_column=Column(Text, nullable=False))

    ttl_ms: int
    max_views: int
    used_views: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
    expires_at: datetime = Field(sa_type=DateTime())
    revoked_at: Optional[datetime] = Field(default=None, sa_type=DateTime())

    first_viewed_at: Optional[datetime] = Field(default=None, sa_type=DateTime())
    last_viewed_at: Optional[datetime] = Field(default=None, sa_type=DateTime())
    exhausted_at: Optional[datetime] = Field(default=None, sa_type=DateTime())
