from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional, Union


class WindowRequest(BaseModel):
    start_time: str  # "7:00 AM"
    duration_hours: Optional[Union[float, str]] = None
    end_time: Optional[str] = None  # "7:00 PM"


class ThresholdRequest(BaseModel):
    threshold: Union[float, str]


class ManualRequest(BaseModel):
    state: Optional[bool] = None  # None toggles


class SimValueRequest(BaseModel):
    value: float = Field(ge=0)

