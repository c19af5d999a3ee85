from __future__ import annotations
import math
from datetime import datetime
from typing import FrozenSet, Optional, Union

from .errors import ConfigurationError
from .models import AutomationProfile, Family


def should_heat_or_cool(sensor_value: float, threshold: float) -> bool:
    return sensor_value >= threshold


def parse_threshold(value: Union[str, float, int]) -> float:
    if isinstance(value, bool):
        raise ConfigurationError("threshold", value, "Threshold must be a number")
    try:
        threshold = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError("threshold", value, f"Invalid threshold: {value!r}")
    if not math.isfinite(threshold) or threshold <= 0:
        raise ConfigurationError("threshold", value, "Threshold must be a positive number")
    return threshold


class FamilyPolicy:
    """How one actuator family turns its profile and a reading into ON/OFF."""

    family: Family
    topic: str
    uses_window = True
    uses_countdown = False
    required_fields: FrozenSet[str] = frozenset({"window", "auto_mode"})

    def automatic_state(
        self, profile: AutomationProfile, now: datetime, reading: Optional[float]
    ) -> Optional[bool]:
        """Desired state under automatic control, or None when undecidable."""
        if profile.window is None:
            return None
        return profile.window.is_active(now)

    def interlock(self, reading: Optional[float]) -> Optional[str]:
        """Reason the actuator must be held OFF, if any."""
        return None

    def progress(self, profile: AutomationProfile, now: datetime) -> Optional[float]:
        if profile.window is None:
            return None
        return profile.window.progress_percent(now)


class LightPolicy(FamilyPolicy):
    family = Family.LIGHT
    topic = "light"
    uses_countdown = True


class MoisturePolicy(FamilyPolicy):
    family = Family.MOISTURE
    topic = "soil_moisture"

    def __init__(self, ceiling: float = 100.0) -> None:
        self.ceiling = ceiling

    def interlock(self, reading: Optional[float]) -> Optional[str]:
        if reading is not None and reading >= self.ceiling:
            return f"Soil moisture {reading:.0f}% at ceiling ({self.ceiling:.0f}%)"
        return None


class TemperaturePolicy(FamilyPolicy):
    family = Family.TEMPERATURE
    topic = "temperature"
    uses_window = False
    required_fields = frozenset({"threshold", "auto_mode"})

    def automatic_state(
        self, profile: AutomationProfile, now: datetime, reading: Optional[float]
    ) -> Optional[bool]:
        if reading is None or profile.threshold is None:
            return None
        return should_heat_or_cool(reading, profile.threshold)

    def progress(self, profile: AutomationProfile, now: datetime) -> Optional[float]:
        return None


def policy_for(family: Family, moisture_ceiling: float = 100.0) -> FamilyPolicy:
    if family is Family.LIGHT:
        return LightPolicy()
    if family is Family.MOISTURE:
        return MoisturePolicy(ceiling=moisture_ceiling)
    return TemperaturePolicy()
