"""
Shared fixtures: deterministic clock, in-memory collaborators and a factory
for wired-up family runners.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from grow_automation.core.timeutil import ManualClock
from grow_automation.domain.controller import AutomationController
from grow_automation.domain.models import Family
from grow_automation.domain.policies import policy_for
from grow_automation.drivers.actuators_sim import SimulatedActuatorPort
from grow_automation.services.feed import SensorHub
from grow_automation.services.runner import FamilyRunner
from grow_automation.storage.memory_store import MemoryScheduleStore

logging.getLogger("grow_automation").setLevel(logging.WARNING)

TZ = timezone(timedelta(hours=8))


def at(hour: int, minute: int = 0, day: int = 1) -> datetime:
    """Local (UTC+8) time on 2026-01-<day>."""
    return datetime(2026, 1, day, hour, minute, tzinfo=TZ)


def make_controller(family: Family, **stored) -> AutomationController:
    ctrl = AutomationController(policy_for(family), cooldown=timedelta(hours=8))
    now = stored.pop("_now", at(0))
    if stored:
        ctrl.load(stored, now)
    return ctrl


@pytest.fixture()
def clock():
    return ManualClock(at(13))


@pytest.fixture()
def hub():
    return SensorHub()


@pytest.fixture()
def actuator():
    return SimulatedActuatorPort()


@pytest.fixture()
def store():
    return MemoryScheduleStore(
        {
            "light": {"start_time": "7:00 AM", "duration_hours": 12, "auto_mode": True},
            "moisture": {"start_time": "6:00 AM", "end_time": "7:00 AM", "auto_mode": False},
            "temperature": {"threshold": 30, "auto_mode": True},
        }
    )


@pytest.fixture()
def make_runner(clock, hub, actuator, store):
    def _make(family: Family, **kwargs) -> FamilyRunner:
        controller = AutomationController(policy_for(family), cooldown=timedelta(hours=8))
        return FamilyRunner(
            controller,
            clock=kwargs.pop("clock", clock),
            feed=kwargs.pop("feed", hub),
            actuator=kwargs.pop("actuator", actuator),
            store=kwargs.pop("store", store),
            device_id=kwargs.pop("device_id", f"{family.value}_relay"),
            tick_seconds=kwargs.pop("tick_seconds", 60),
            io_timeout=kwargs.pop("io_timeout", 1.0),
        )

    return _make
