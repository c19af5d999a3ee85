from __future__ import annotations
from datetime import datetime
from typing import Any, AsyncIterator, Mapping, Protocol, runtime_checkable

from .models import ActionEvent, SensorSample


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime:
        ...


@runtime_checkable
class SensorFeed(Protocol):
    def subscribe(self, topic: str) -> AsyncIterator[SensorSample]:
        ...


@runtime_checkable
class ActuatorPort(Protocol):
    async def get_state(self, device_id: str) -> bool:
        ...

    async def set_state(self, device_id: str, on: bool, reason: str) -> None:
        """Command the device. Raises on failure."""
        ...


@runtime_checkable
class ScheduleStore(Protocol):
    async def init(self) -> None:
        ...

    async def read(self, profile_id: str) -> dict[str, Any]:
        ...

    async def write(self, profile_id: str, update: Mapping[str, Any]) -> None:
        ...

    async def publish(self, profile_id: str, metrics: Mapping[str, Any]) -> None:
        ...

    async def insert_action(self, action: ActionEvent) -> None:
        ...

    async def query_actions(self, start_ts: str, end_ts: str, limit: int) -> list[ActionEvent]:
        ...
