from __future__ import annotations
import asyncio
import logging
from typing import Optional

from ..services.feed import SensorHub

logger = logging.getLogger(__name__)


class SimulatedSensor:
    """Publishes a user-set reading for one topic on a fixed interval."""

    def __init__(
        self,
        hub: SensorHub,
        topic: str,
        unit: str,
        value: float,
        interval_s: float = 5.0,
        ceiling: Optional[float] = None,
    ) -> None:
        self._hub = hub
        self.topic = topic
        self.unit = unit
        self.ceiling = ceiling
        self._interval_s = interval_s
        self._value = self._clamp(value)
        self._task: Optional[asyncio.Task] = None

    def _clamp(self, value: float) -> float:
        val = max(0.0, float(value))
        if self.ceiling is not None:
            val = min(self.ceiling, val)
        return val

    @property
    def value(self) -> float:
        return self._value

    def set_value(self, value: float) -> float:
        self._value = self._clamp(value)
        self._hub.publish(self.topic, self._value)
        logger.info("Simulated %s set to %.1f%s", self.topic, self._value, self.unit)
        return self._value

    def status(self) -> dict:
        return {
            "topic": self.topic,
            "unit": self.unit,
            "value": self._value,
            "ceiling": self.ceiling,
            "running": self._task is not None and not self._task.done(),
        }

    async def start(self) -> None:
        self._task = asyncio.create_task(self._run(), name=f"sim_{self.topic}")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        logger.info("Simulated %s sensor started (interval=%ss)", self.topic, self._interval_s)
        while True:
            self._hub.publish(self.topic, self._value)
            await asyncio.sleep(self._interval_s)


def default_sim_sensors(hub: SensorHub, interval_s: float = 5.0) -> list[SimulatedSensor]:
    return [
        SimulatedSensor(hub, "light", "%", value=20.0, interval_s=interval_s, ceiling=100.0),
        SimulatedSensor(hub, "soil_moisture", "%", value=40.0, interval_s=interval_s, ceiling=100.0),
        SimulatedSensor(hub, "temperature", "°C", value=27.0, interval_s=interval_s),
    ]
