from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


def utcnow() -> datetime:
    # naive UTC, matching how the store persists timestamps
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return utcnow()


class ManualClock:
    """
    Clock that only moves when told to. Used by tests to pin expiry edges.
    """

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or utcnow()

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now


system_clock = SystemClock()
