from __future__ import annotations
import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from typing import AsyncIterator, Optional

from ..core.timeutil import now_local
from ..domain.models import SensorSample

logger = logging.getLogger(__name__)


class SensorHub:
    """In-process push feed of sensor values, latest value wins.

    Every subscriber gets a one-slot mailbox: a new sample replaces one the
    subscriber has not consumed yet, so slow consumers only ever see the
    freshest reading.
    """

    def __init__(self) -> None:
        self._latest: dict[str, SensorSample] = {}
        self._subscribers: dict[str, set[asyncio.Queue]] = defaultdict(set)

    def latest(self, topic: str) -> Optional[SensorSample]:
        return self._latest.get(topic)

    def publish(self, topic: str, value: float, ts: Optional[datetime] = None) -> SensorSample:
        sample = SensorSample(topic=topic, value=float(value), ts=ts or now_local())
        self._latest[topic] = sample
        for q in list(self._subscribers[topic]):
            if q.full():
                q.get_nowait()
            q.put_nowait(sample)
        logger.debug("publish %s=%.2f", topic, sample.value)
        return sample

    async def subscribe(self, topic: str) -> AsyncIterator[SensorSample]:
        q: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._subscribers[topic].add(q)
        try:
            # replay the current value so late subscribers start with data
            current = self._latest.get(topic)
            if current is not None:
                q.put_nowait(current)
            while True:
                yield await q.get()
        finally:
            self._subscribers[topic].discard(q)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers[topic])
