from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Optional

from .config import settings


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def local_tz(offset_hours: Optional[float] = None) -> timezone:
    hours = settings.utc_offset_hours if offset_hours is None else offset_hours
    return timezone(timedelta(hours=hours))


def now_local() -> datetime:
    return now_utc().astimezone(local_tz())


class OffsetClock:
    """Wall clock at a fixed UTC offset."""

    def __init__(self, offset_hours: Optional[float] = None) -> None:
        self._tz = local_tz(offset_hours)

    def now(self) -> datetime:
        return now_utc().astimezone(self._tz)


class ManualClock:
    """Clock that only moves when told to. Used by tests and simulations."""

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None:
            start = start.replace(tzinfo=local_tz())
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        if value.tzinfo is None:
            value = value.replace(tzinfo=self._now.tzinfo)
        self._now = value

    def advance(self, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now
