from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from .core.config import settings
from .core.log import configure_logging
from .core.timeutil import OffsetClock

from .api.routes import router as api_router
import grow_automation.api.routes as routes_module

from .domain.controller import AutomationController
from .domain.interfaces import ActuatorPort, Clock, ScheduleStore, SensorFeed
from .domain.models import Family
from .domain.policies import policy_for
from .drivers.actuators_sim import SimulatedActuatorPort
from .drivers.actuator_sonoff import SonoffActuatorPort
from .drivers.sensors_sim import SimulatedSensor, default_sim_sensors
from .services.feed import SensorHub
from .services.runner import FamilyRunner
from .storage.sqlite_repo import SQLiteScheduleStore


logger = logging.getLogger(__name__)


def default_profiles() -> dict[str, dict]:
    return {
        Family.LIGHT.value: {
            "start_time": settings.default_light_start,
            "duration_hours": settings.default_light_hours,
            "auto_mode": False,
        },
        Family.MOISTURE.value: {
            "start_time": settings.default_water_start,
            "end_time": settings.default_water_end,
            "auto_mode": False,
        },
        Family.TEMPERATURE.value: {
            "threshold": settings.default_fan_threshold,
            "auto_mode": False,
        },
    }


def device_for(family: Family) -> str:
    return {
        Family.LIGHT: settings.light_device_id,
        Family.MOISTURE: settings.moisture_device_id,
        Family.TEMPERATURE: settings.temperature_device_id,
    }[family]


def build_runners(
    clock: Clock,
    feed: SensorFeed,
    actuator: ActuatorPort,
    store: ScheduleStore,
) -> dict[str, FamilyRunner]:
    runners: dict[str, FamilyRunner] = {}
    for family in Family:
        controller = AutomationController(
            policy_for(family, moisture_ceiling=settings.moisture_ceiling),
            cooldown=timedelta(hours=settings.cooldown_hours),
        )
        runners[family.value] = FamilyRunner(
            controller,
            clock=clock,
            feed=feed,
            actuator=actuator,
            store=store,
            device_id=device_for(family),
        )
    return runners


def build_actuator() -> ActuatorPort:
    if settings.mode.lower() == "real":
        return SonoffActuatorPort(
            settings.sonoff_devices,
            port=settings.sonoff_port,
            timeout=settings.io_timeout_seconds,
        )
    return SimulatedActuatorPort()


# --- Singletons ---
clock = OffsetClock()
hub = SensorHub()
actuator = build_actuator()
store = SQLiteScheduleStore(settings.sqlite_path)
runners = build_runners(clock, hub, actuator, store)
sim_sensors: dict[str, SimulatedSensor] = (
    {s.topic: s for s in default_sim_sensors(hub)} if settings.mode.lower() == "sim" else {}
)


def get_runners() -> dict[str, FamilyRunner]:
    return runners


def get_store() -> ScheduleStore:
    return store


def get_sim_sensors() -> dict[str, SimulatedSensor]:
    if not sim_sensors:
        raise RuntimeError("Simulated sensors not available (mode is not 'sim').")
    return sim_sensors


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s (mode=%s utc_offset=%+.1fh)", settings.app_name, settings.mode, settings.utc_offset_hours)

    await store.init()
    await store.seed_defaults(default_profiles())

    for sensor in sim_sensors.values():
        await sensor.start()
    for runner in runners.values():
        await runner.start()

    try:
        yield
    finally:
        for runner in runners.values():
            await runner.stop()
        for sensor in sim_sensors.values():
            await sensor.stop()

        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_runners] = get_runners
app.dependency_overrides[routes_module.get_store] = get_store
app.dependency_overrides[routes_module.get_sim_sensors] = get_sim_sensors

app.include_router(api_router, prefix="/api")
