from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Grow Automation"

    # Local time is a fixed offset from UTC (the source ran on UTC+8)
    utc_offset_hours: float = Field(default=8.0, ge=-14, le=14)

    # Evaluation loop
    tick_seconds: float = Field(default=30.0, ge=1, le=60)
    io_timeout_seconds: float = Field(default=5.0, gt=0)

    # Light family: grace period after the scheduled window closes
    cooldown_hours: float = Field(default=8.0, gt=0)

    # Moisture family: pump interlock
    moisture_ceiling: float = 100.0

    # Storage
    sqlite_path: str = Field(default="grow_automation.db")

    # Mode: "sim" for development; "real" drives the Sonoff relays
    mode: str = Field(default="sim")

    # Relay addresses in eWeLink DIY mode, keyed by device id
    sonoff_devices: dict[str, str] = Field(default_factory=dict)
    sonoff_port: int = 8081

    # Device ids per family
    light_device_id: str = "grow_light"
    moisture_device_id: str = "water_pump"
    temperature_device_id: str = "exhaust_fan"

    # Seed values for an empty store
    default_light_start: str = "7:00 AM"
    default_light_hours: float = 12.0
    default_water_start: str = "6:00 AM"
    default_water_end: str = "7:00 AM"
    default_fan_threshold: float = 24.0

    # Logging
    log_file: str = "grow_automation.log"
    log_level: str = "INFO"


settings = Settings()
