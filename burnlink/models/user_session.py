from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index
from sqlmodel import SQLModel, Field

from ..clock import utcnow


class UserSession(SQLModel, table=True):
    """
    Bearer session. `id` is the credential itself.
    Valid while expires_at > now; logout deletes the row, nothing reaps it.
    """

    __tablename__ = "sessions"
    __table_args__ = (Index("sessions_user_idx", "user_id"),)

    id: str = Field(primary_key=True, max_length=64)
    user_id: str = Field(foreign_key="users.id", max_length=36)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
    expires_at: datetime = Field(sa_type=DateTime())
