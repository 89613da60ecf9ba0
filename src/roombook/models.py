from __future__ import annotations

import datetime as dt
import uuid
from typing import Any, Literal, get_args

from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import InvalidRange, InvalidStatusTransition
from .timeutil import parse_time_of_day, to_minutes

BookingStatus = Literal["pending", "confirmed", "declined", "cancelled"]
RecurrencePattern = Literal["Daily", "Weekly", "Monthly"]

RECURRENCE_PATTERNS: tuple[str, ...] = get_args(RecurrencePattern)
# values the booking form sends when the "repeat" dropdown is left alone
NO_RECURRENCE: tuple[Any, ...] = (None, "", "No")
# longest span a recurring series may cover, start date to end date
MAX_SERIES_DAYS = 731

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "declined", "cancelled"}),
    "confirmed": frozenset({"cancelled"}),
    "declined": frozenset(),
    "cancelled": frozenset(),
}


def check_transition(current: str, requested: str) -> None:
    if requested not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidStatusTransition(current, requested)


def new_group_id() -> str:
    return uuid.uuid4().hex


def _parse_time_field(value: Any) -> Any:
    if value is None:
        return None
    return parse_time_of_day(value)


def _parse_pattern_field(value: Any) -> Any:
    if value in NO_RECURRENCE:
        return None
    return value


class BookingSlot(BaseModel):
    """Where and when a booking happens, including its recurrence rule."""

    room_id: str = Field(..., min_length=1)
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    is_recurring: bool = False
    recurrence_pattern: RecurrencePattern | None = None
    recurrence_end_date: dt.date | None = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_times(cls, value: Any) -> Any:
        return _parse_time_field(value)

    @field_validator("recurrence_pattern", mode="before")
    @classmethod
    def _parse_pattern(cls, value: Any) -> Any:
        return _parse_pattern_field(value)

    @model_validator(mode="after")
    def _check_invariants(self) -> BookingSlot:
        if to_minutes(self.end_time) <= to_minutes(self.start_time):
            raise InvalidRange("end_time must be after start_time")

        if not self.is_recurring:
            self.recurrence_pattern = None
            self.recurrence_end_date = None
            return self

        if self.recurrence_pattern is None or self.recurrence_end_date is None:
            raise ValueError("recurring bookings need recurrence_pattern and recurrence_end_date")
        if self.recurrence_end_date < self.date:
            raise InvalidRange("recurrence_end_date must not be before date")
        if (self.recurrence_end_date - self.date).days > MAX_SERIES_DAYS:
            raise InvalidRange(f"a recurring series may span at most {MAX_SERIES_DAYS} days")
        return self


class BookingCreate(BookingSlot):
    user_id: str = Field(..., min_length=1)
    building_id: str | None = None
    category_id: str | None = None
    title: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=255)


class Booking(BookingCreate):
    booking_id: str
    status: BookingStatus = "pending"
    recurring_group_id: str | None = None
    decline_reason: str | None = None
    cancel_reason: str | None = None
    changed_by: str | None = None
    time_submitted: dt.datetime | None = None


class BookingUpdate(BaseModel):
    room_id: str | None = Field(default=None, min_length=1)
    building_id: str | None = None
    category_id: str | None = None
    title: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=255)
    date: dt.date | None = None
    start_time: dt.time | None = None
    end_time: dt.time | None = None
    is_recurring: bool | None = None
    recurrence_pattern: RecurrencePattern | None = None
    recurrence_end_date: dt.date | None = None

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def _parse_times(cls, value: Any) -> Any:
        return _parse_time_field(value)

    @field_validator("recurrence_pattern", mode="before")
    @classmethod
    def _parse_pattern(cls, value: Any) -> Any:
        return _parse_pattern_field(value)

    def changes(self) -> dict[str, Any]:
        changes = self.model_dump(exclude_unset=True)
        # clearing the pattern without touching the flag ends the series
        if "recurrence_pattern" in changes:
            # a pattern without the flag starts (or keeps) a series
            changes.setdefault("is_recurring", changes["recurrence_pattern"] is not None)
        return changes

    def apply_to(self, current: Booking) -> Booking:
        """Return *current* with this update applied and re-validated."""
        merged = Booking.model_validate({**current.model_dump(), **self.changes()})
        if not merged.is_recurring:
            merged.recurring_group_id = None
        elif merged.recurring_group_id is None:
            merged.recurring_group_id = new_group_id()
        return merged


class StatusChange(BaseModel):
    reason: str | None = Field(default=None, max_length=255)
    changed_by: str | None = Field(default=None, max_length=255)


class Occurrence(BaseModel):
    date: dt.date
    booking_id: str | None = None
    recurring_group_id: str | None = None
    room_id: str
    start_time: dt.time
    end_time: dt.time
    status: BookingStatus = "pending"
    title: str | None = None


class AvailabilityCheck(BookingSlot):
    exclude_booking_id: str | None = None


class AvailabilityResult(BaseModel):
    available: bool
    message: str
    conflicts: list[dt.date] = Field(default_factory=list)


class IntervalOut(BaseModel):
    start: str
    end: str


class RoomAvailability(BaseModel):
    room_id: str
    date: dt.date
    business_hours: IntervalOut
    intervals: list[IntervalOut]
    slot_starts: list[str]
