from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, Index, Text
from sqlmodel import SQLModel, Field

from ..clock import utcnow
from ..tokens import new_id


class View(SQLModel, table=True):
    """
    Append-only audit row, one per successful consume. Written in the same
    transaction as the drop's counter update.
    """

    __tablename__ = "views"
    __table_args__ = (
        Index("views_drop_idx", "drop_id"),
        Index("views_time_idx", "viewed_at"),
    )

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    drop_id: str = Field(foreign_key="drops.id", max_length=36)
    viewed_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())

    ua: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    ip: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
