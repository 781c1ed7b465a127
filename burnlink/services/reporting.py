from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pydantic import BaseModel
from sqlalchemy import case, func
from sqlmodel import Session, select

from ..clock import Clock, system_clock
from ..models.drop import Drop
from ..models.view import View

MAX_WINDOW_MINUTES = 24 * 60


class MinuteBucket(BaseModel):
    t: datetime
    c: int


class DropStats(BaseModel):
    drop_id: str
    created_at: datetime
    first_viewed_at: Optional[datetime] = None
    exhausted_at: Optional[datetime] = None
    max_views: int
    used_views: int

    time_to_first_sec: Optional[int] = None
    time_to_exhaust_sec: Optional[int] = None

    peak_rpm: int
    total_in_window: int
    unique_ips: int
    per_minute: List[MinuteBucket]


class Overview(BaseModel):
    window_minutes: int
    total_drops: int
    exhausted_drops: int
    total_views: int


def _check_window(window_minutes: int) -> int:
    w = int(window_minutes)
    if w < 1 or w > MAX_WINDOW_MINUTES:
        raise ValueError(f"window_minutes must be between 1 and {MAX_WINDOW_MINUTES}")
    return w


def _floor_minute(dt: datetime) -> datetime:
    return dt.replace(second=0, microsecond=0)


def _seconds_between(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    if start is None or end is None:
        return None
    return round((end - start).total_seconds())


def drop_stats(
    session: Session,
    drop_id: str,
    window_minutes: int = 60,
    *,
    clock: Clock = system_clock,
) -> Optional[DropStats]:
    """
    Per-drop activity over the last `window_minutes`.

    per_minute is zero-filled from the minute the window opens up to the
    current minute, oldest first.
    """
    window = _check_window(window_minutes)
    d = session.get(Drop, drop_id)
    if d is None:
        return None

    now = clock.now()
    start = now - timedelta(minutes=window)

    in_window = (View.drop_id == drop_id, View.viewed_at >= start)
    viewed = session.exec(select(View.viewed_at).where(*in_window)).all()

    counts: Dict[datetime, int] = {}
    for ts in viewed:
        key = _floor_minute(ts)
        counts[key] = counts.get(key, 0) + 1

    per_minute: List[MinuteBucket] = []
    bucket = _floor_minute(start)
    last = _floor_minute(now)
    while bucket <= last:
        per_minute.append(MinuteBucket(t=bucket, c=counts.get(bucket, 0)))
        bucket += timedelta(minutes=1)

    unique_ips = session.exec(
        select(func.count(func.distinct(View.ip))).where(*in_window, View.ip.is_not(None))
    ).one()

    return DropStats(
        drop_id=d.id,
        created_at=d.created_at,
        first_viewed_at=d.first_viewed_at,
        exhausted_at=d.exhausted_at,
        max_views=d.max_views,
        used_views=d.used_views,
        time_to_first_sec=_seconds_between(d.created_at, d.first_viewed_at),
        time_to_exhaust_sec=_seconds_between(d.created_at, d.exhausted_at),
        peak_rpm=max((b.c for b in per_minute), default=0),
        total_in_window=sum(b.c for b in per_minute),
        unique_ips=int(unique_ips or 0),
        per_minute=per_minute,
    )


def overview(
    session: Session,
    window_minutes: int = 60,
    *,
    clock: Clock = system_clock,
) -> Overview:
    """
    Counts across drops created in the last `window_minutes`.
    """
    window = _check_window(window_minutes)
    start = clock.now() - timedelta(minutes=window)

    q = select(
        func.count(Drop.id),
        func.sum(case((Drop.exhausted_at.is_not(None), 1), else_=0)),
        func.sum(Drop.used_views),
    ).where(Drop.created_at >= start)
    total, exhausted, views = session.exec(q).one()

    return Overview(
        window_minutes=window,
        total_drops=int(total or 0),
        exhausted_drops=int(exhausted or 0),
        total_views=int(views or 0),
    )
