from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException

from ..core.config import settings
from ..core.timeutil import now_utc, now_local
from ..domain.errors import ConfigurationError, InterlockViolation
from ..domain.interfaces import ScheduleStore
from ..drivers.sensors_sim import SimulatedSensor
from ..services.runner import FamilyRunner
from .schemas import (
    ManualRequest,
    SimValueRequest,
    ThresholdRequest,
    WindowRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependency getters (imported from main via circular-safe approach) ---
# We define them here as callables that main.py will set via app.dependency_overrides.
def get_runners() -> dict[str, FamilyRunner]:  # overridden in main
    raise RuntimeError("Runner dependency not configured")

def get_store() -> ScheduleStore:  # overridden in main
    raise RuntimeError("Store dependency not configured")

def get_sim_sensors() -> dict[str, SimulatedSensor]:  # overridden in main
    raise RuntimeError("Simulated sensor dependency not configured")


def _runner(family: str, runners: dict[str, FamilyRunner]) -> FamilyRunner:
    runner = runners.get(family)
    if runner is None:
        raise HTTPException(status_code=404, detail=f"Unknown family: {family}")
    return runner


def _bad_config(e: ConfigurationError) -> HTTPException:
    return HTTPException(status_code=400, detail={"field": e.field, "message": e.message})


@router.get("/profiles")
async def list_profiles(runners: dict[str, FamilyRunner] = Depends(get_runners)):
    return {
        "app": settings.app_name,
        "now_local": now_local().isoformat(),
        "profiles": [r.status() for r in runners.values()],
    }


@router.get("/profiles/{family}")
async def get_profile(family: str, runners: dict[str, FamilyRunner] = Depends(get_runners)):
    return _runner(family, runners).status()


@router.put("/profiles/{family}/window")
async def set_window(family: str, req: WindowRequest, runners: dict[str, FamilyRunner] = Depends(get_runners)):
    runner = _runner(family, runners)
    try:
        window = await runner.set_window(req.start_time, duration_hours=req.duration_hours, end_time=req.end_time)
    except ConfigurationError as e:
        raise _bad_config(e)
    return {
        "ok": True,
        "start_time": window.start_label,
        "end_time": window.end_label,
        "duration_hours": window.duration_hours,
        "overnight": window.is_overnight,
    }


@router.put("/profiles/{family}/threshold")
async def set_threshold(family: str, req: ThresholdRequest, runners: dict[str, FamilyRunner] = Depends(get_runners)):
    runner = _runner(family, runners)
    try:
        threshold = await runner.set_threshold(req.threshold)
    except ConfigurationError as e:
        raise _bad_config(e)
    return {"ok": True, "threshold": threshold}


@router.post("/profiles/{family}/automatic/enable")
async def automatic_enable(family: str, runners: dict[str, FamilyRunner] = Depends(get_runners)):
    runner = _runner(family, runners)
    await runner.enable_automatic()
    return {"ok": True, "auto_mode": True, "mode": runner.controller.mode.value}


@router.post("/profiles/{family}/automatic/disable")
async def automatic_disable(family: str, runners: dict[str, FamilyRunner] = Depends(get_runners)):
    runner = _runner(family, runners)
    await runner.disable_automatic()
    return {"ok": True, "auto_mode": False, "mode": runner.controller.mode.value}


@router.post("/profiles/{family}/manual")
async def manual_toggle(family: str, req: ManualRequest, runners: dict[str, FamilyRunner] = Depends(get_runners)):
    runner = _runner(family, runners)
    try:
        target = await runner.manual_toggle(req.state)
    except InterlockViolation as e:
        raise HTTPException(status_code=409, detail=e.reason)
    return {"ok": True, "state": target, "auto_mode": False}


@router.get("/actions")
async def actions(
    hours: float = 4,
    limit: int = 2000,
    store: ScheduleStore = Depends(get_store),
):
    end = now_utc()
    start = end - timedelta(hours=max(hours, 1 / 60))
    rows = await store.query_actions(start.isoformat(), end.isoformat(), limit=min(limit, 20000))
    return {
        "start_utc": start.isoformat(),
        "end_utc": end.isoformat(),
        "rows": [
            {
                "ts_utc": a.ts_utc.isoformat(),
                "profile_id": a.profile_id,
                "device_id": a.device_id,
                "state": a.state,
                "reason": a.reason,
                "sensor_value": a.sensor_value,
                "progress_percent": a.progress_percent,
            }
            for a in rows
        ],
    }


# --- Simulation endpoints ---
def _sim(topic: str, sensors: dict[str, SimulatedSensor]) -> SimulatedSensor:
    sensor = sensors.get(topic)
    if sensor is None:
        raise HTTPException(status_code=404, detail=f"Unknown sensor topic: {topic}")
    return sensor


@router.get("/sim/status")
async def sim_status(sensors: dict[str, SimulatedSensor] = Depends(get_sim_sensors)):
    return {"sensors": [s.status() for s in sensors.values()]}


@router.post("/sim/{topic}")
async def sim_set_value(topic: str, req: SimValueRequest, sensors: dict[str, SimulatedSensor] = Depends(get_sim_sensors)):
    value = _sim(topic, sensors).set_value(req.value)
    return {"ok": True, "topic": topic, "value": value}
