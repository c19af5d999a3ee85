from __future__ import annotations
from datetime import datetime, timedelta

from .models import CountdownState


class Countdown:
    """Fixed-length decay timer started when the light window closes.

    Reports the share of the grace period still remaining so the gauge has
    something meaningful to show between windows.
    """

    def __init__(self, duration: timedelta) -> None:
        if duration.total_seconds() <= 0:
            raise ValueError("Countdown duration must be positive")
        self.duration = duration
        self.state = CountdownState()

    @property
    def active(self) -> bool:
        return self.state.active

    def arm(self, now: datetime) -> CountdownState:
        self.state = CountdownState(active=True, end_ts=now + self.duration, remaining_percent=100.0)
        return self.state

    def tick(self, now: datetime) -> CountdownState:
        if not self.state.active or self.state.end_ts is None:
            return self.state

        remaining = max(timedelta(0), self.state.end_ts - now)
        if remaining == timedelta(0):
            self.state = CountdownState(active=False, end_ts=None, remaining_percent=0.0)
            return self.state

        pct = remaining / self.duration * 100.0
        pct = max(0.0, min(pct, self.state.remaining_percent))
        self.state = CountdownState(active=True, end_ts=self.state.end_ts, remaining_percent=pct)
        return self.state

    def disarm(self) -> CountdownState:
        self.state = CountdownState()
        return self.state

    def restore(self, end_ts: datetime, now: datetime) -> CountdownState:
        """Resume a countdown whose end time was persisted before a restart."""
        self.state = CountdownState(active=True, end_ts=end_ts, remaining_percent=100.0)
        return self.tick(now)
