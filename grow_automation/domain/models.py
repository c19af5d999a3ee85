from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from .schedule import TimeWindow


class Family(str, Enum):
    LIGHT = "light"
    MOISTURE = "moisture"
    TEMPERATURE = "temperature"


class Mode(str, Enum):
    MANUAL = "manual"
    AUTO_IDLE = "auto_idle"
    AUTO_ACTIVE = "auto_active"
    AUTO_COOLDOWN = "auto_cooldown"

    @property
    def automatic(self) -> bool:
        return self is not Mode.MANUAL


class Attachment(str, Enum):
    UNATTACHED = "unattached"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class SensorSample:
    topic: str
    value: float
    ts: datetime


@dataclass
class AutomationProfile:
    family: Family
    window: Optional[TimeWindow] = None
    auto_mode: Optional[bool] = None
    threshold: Optional[float] = None
    manual_state: bool = False
    last_activation: Optional[datetime] = None


@dataclass(frozen=True)
class CountdownState:
    active: bool = False
    end_ts: Optional[datetime] = None
    remaining_percent: float = 100.0


@dataclass(frozen=True)
class Evaluation:
    family: Family
    ts: datetime
    mode: Mode
    command: Optional[bool]  # None = nothing to write
    previous_state: bool
    reason: str
    progress_percent: Optional[float] = None
    countdown: Optional[CountdownState] = None
    sensor_value: Optional[float] = None

    @property
    def desired_state(self) -> bool:
        return self.previous_state if self.command is None else self.command


@dataclass(frozen=True)
class ActionEvent:
    ts_utc: datetime
    profile_id: str
    device_id: str
    state: bool
    reason: str
    sensor_value: Optional[float]
    progress_percent: Optional[float]
