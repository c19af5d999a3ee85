from __future__ import annotations
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from .errors import ConfigurationError

MINUTES_PER_DAY = 1440

# "7:00 AM", "07:30pm", "12:05 Am"
_CLOCK_RE = re.compile(r"^(0?[1-9]|1[0-2]):([0-5][0-9]) ?(AM|PM)$", re.IGNORECASE)


def parse_clock_time(text: str) -> int:
    """Parse a 12-hour "H:MM AM|PM" string into minutes since midnight."""
    if not isinstance(text, str):
        raise ConfigurationError("start_time", text, "Time must be text like 7:00 AM")
    m = _CLOCK_RE.match(text.strip())
    if not m:
        raise ConfigurationError("start_time", text, f"Invalid time format: {text!r}, expected e.g. 7:00 AM")

    hours = int(m.group(1))
    minutes = int(m.group(2))
    meridiem = m.group(3).upper()

    if meridiem == "PM" and hours != 12:
        hours += 12
    if meridiem == "AM" and hours == 12:
        hours = 0
    return hours * 60 + minutes


def format_clock_time(minute_of_day: float) -> str:
    total = int(minute_of_day) % MINUTES_PER_DAY
    hours, minutes = divmod(total, 60)
    meridiem = "PM" if hours >= 12 else "AM"
    return f"{hours % 12 or 12}:{minutes:02d} {meridiem}"


def parse_duration_hours(value: Union[str, float, int]) -> float:
    """Validate a duration given in (possibly fractional) hours."""
    if isinstance(value, bool):
        raise ConfigurationError("duration_hours", value, "Duration must be a number of hours")
    try:
        hours = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError("duration_hours", value, f"Invalid duration: {value!r}")

    if not math.isfinite(hours) or hours <= 0:
        raise ConfigurationError("duration_hours", value, "Duration must be a positive number of hours")
    if hours * 60 > MINUTES_PER_DAY:
        raise ConfigurationError("duration_hours", value, "Duration cannot exceed 24 hours")
    return hours


def minute_of_day(dt: datetime) -> float:
    return dt.hour * 60 + dt.minute + dt.second / 60.0 + dt.microsecond / 60_000_000.0


@dataclass(frozen=True)
class TimeWindow:
    start_minute: float
    duration_minutes: float

    def __post_init__(self) -> None:
        if not math.isfinite(self.duration_minutes) or self.duration_minutes <= 0:
            raise ConfigurationError("duration_hours", self.duration_minutes / 60.0, "Duration must be positive")
        if self.duration_minutes > MINUTES_PER_DAY:
            raise ConfigurationError("duration_hours", self.duration_minutes / 60.0, "Duration cannot exceed 24 hours")
        object.__setattr__(self, "start_minute", self.start_minute % MINUTES_PER_DAY)

    @classmethod
    def parse(cls, start_text: str, duration_hours: Union[str, float, int]) -> "TimeWindow":
        start = parse_clock_time(start_text)
        hours = parse_duration_hours(duration_hours)
        return cls(start_minute=start, duration_minutes=hours * 60)

    @classmethod
    def between(cls, start_text: str, end_text: str) -> "TimeWindow":
        start = parse_clock_time(start_text)
        try:
            end = parse_clock_time(end_text)
        except ConfigurationError as e:
            raise ConfigurationError("end_time", end_text, e.message)
        duration = (end - start) % MINUTES_PER_DAY
        if duration == 0:
            raise ConfigurationError("end_time", end_text, "End time must differ from start time")
        return cls(start_minute=start, duration_minutes=duration)

    @property
    def end_minute(self) -> float:
        return (self.start_minute + self.duration_minutes) % MINUTES_PER_DAY

    @property
    def is_overnight(self) -> bool:
        return self.start_minute + self.duration_minutes > MINUTES_PER_DAY

    @property
    def is_full_day(self) -> bool:
        return self.duration_minutes >= MINUTES_PER_DAY

    @property
    def duration_hours(self) -> float:
        return self.duration_minutes / 60.0

    @property
    def start_label(self) -> str:
        return format_clock_time(self.start_minute)

    @property
    def end_label(self) -> str:
        return format_clock_time(self.end_minute)

    def _contains(self, m: float) -> bool:
        if self.is_full_day:
            return True
        if self.is_overnight:
            return m >= self.start_minute or m < self.end_minute
        # unwrapped end, so a window closing exactly at midnight still matches
        return self.start_minute <= m < self.start_minute + self.duration_minutes

    def is_active(self, now: datetime) -> bool:
        return self._contains(minute_of_day(now))

    def elapsed_minutes(self, now: datetime) -> float:
        m = minute_of_day(now)
        if m >= self.start_minute:
            return m - self.start_minute
        # past midnight, counting from yesterday's start
        return (MINUTES_PER_DAY - self.start_minute) + m

    def progress_percent(self, now: datetime) -> float:
        m = minute_of_day(now)
        if not self._contains(m):
            return 0.0 if m < self.start_minute else 100.0
        pct = self.elapsed_minutes(now) / self.duration_minutes * 100.0
        return max(0.0, min(100.0, pct))

    def label(self) -> str:
        return f"{self.start_label} - {self.end_label}"
