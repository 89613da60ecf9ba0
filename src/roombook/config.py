from __future__ import annotations

import os
from datetime import time
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from .availability import BusinessHours
from .timeutil import parse_time_of_day


class Settings(BaseModel):
    table_name: str = "bookings"
    business_hours_start: time = time(8, 0)
    business_hours_end: time = time(22, 0)
    # padding shown around confirmed bookings in the time picker
    availability_buffer_minutes: int = Field(default=30, ge=0)
    # padding enforced when a booking is created, edited or confirmed
    conflict_buffer_minutes: int = Field(default=0, ge=0)
    slot_step_minutes: int = Field(default=30, gt=0)
    timezone: str = "UTC"

    @field_validator("business_hours_start", "business_hours_end", mode="before")
    @classmethod
    def _parse_hours(cls, value: object) -> time:
        return parse_time_of_day(value)

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value

    @model_validator(mode="after")
    def _check_hours(self) -> Settings:
        # raises InvalidRange when the window is empty or inverted
        _ = self.business_hours
        return self

    @property
    def business_hours(self) -> BusinessHours:
        return BusinessHours.parse(self.business_hours_start, self.business_hours_end)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls) -> Settings:
        env = {
            "table_name": os.environ.get("TABLE_NAME"),
            "business_hours_start": os.environ.get("BUSINESS_HOURS_START"),
            "business_hours_end": os.environ.get("BUSINESS_HOURS_END"),
            "availability_buffer_minutes": os.environ.get("AVAILABILITY_BUFFER_MINUTES"),
            "conflict_buffer_minutes": os.environ.get("CONFLICT_BUFFER_MINUTES"),
            "slot_step_minutes": os.environ.get("SLOT_STEP_MINUTES"),
            "timezone": os.environ.get("BOOKING_TIMEZONE"),
        }
        return cls(**{key: value for key, value in env.items() if value is not None})


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
