from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, time

from .errors import InvalidRange
from .models import Booking, BookingSlot
from .recurrence import occurrence_dates, occurs_on
from .timeutil import to_minutes

DEFAULT_BUFFER_MINUTES = 30


@dataclass(frozen=True)
class Interval:
    """Half-open ``[start, end)`` range in minutes since midnight."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise InvalidRange(f"interval end {self.end} is not after start {self.start}")

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end


@dataclass(frozen=True)
class BusinessHours(Interval):
    @classmethod
    def parse(cls, start: time | str, end: time | str) -> BusinessHours:
        return cls(to_minutes(start), to_minutes(end))


@dataclass(frozen=True)
class TimeRange(Interval):
    """A candidate booking slot on one calendar day."""

    day: date | None = None

    @classmethod
    def on(cls, day: date, start: time | str, end: time | str) -> TimeRange:
        return cls(to_minutes(start), to_minutes(end), day)


def _occupied(bookings: Iterable[Booking], hours: BusinessHours, buffer_minutes: int) -> list[tuple[int, int]]:
    ranges = []
    for booking in bookings:
        if booking.status != "confirmed":
            continue
        start = max(to_minutes(booking.start_time) - buffer_minutes, hours.start)
        end = min(to_minutes(booking.end_time) + buffer_minutes, hours.end)
        # bookings lying wholly outside business hours clamp to nothing
        if end > start:
            ranges.append((start, end))
    return sorted(ranges)


def free_intervals(
    bookings: Iterable[Booking],
    hours: BusinessHours,
    buffer_minutes: int = DEFAULT_BUFFER_MINUTES,
) -> list[Interval]:
    """Free gaps in *hours* around the confirmed *bookings*.

    Each confirmed booking blocks its own time padded by *buffer_minutes* on
    both sides. The result is sorted and disjoint. The caller is responsible
    for passing only the bookings of one room on one date.
    """
    if buffer_minutes < 0:
        raise InvalidRange("buffer_minutes must not be negative")

    free: list[Interval] = []
    cursor = hours.start
    for start, end in _occupied(bookings, hours, buffer_minutes):
        if start > cursor:
            free.append(Interval(cursor, start))
        cursor = max(cursor, end)

    if cursor < hours.end:
        free.append(Interval(cursor, hours.end))
    return free


def not_before(intervals: Iterable[Interval], now_minutes: int) -> list[Interval]:
    """Drop or truncate intervals that have already started by *now_minutes*."""
    clipped = []
    for interval in intervals:
        if interval.end <= now_minutes:
            continue
        if interval.start >= now_minutes:
            clipped.append(interval)
        else:
            clipped.append(Interval(now_minutes, interval.end))
    return clipped


def slot_starts(intervals: Iterable[Interval], step: int = 30) -> list[int]:
    if step <= 0:
        raise InvalidRange("step must be positive")
    starts: list[int] = []
    for interval in intervals:
        first = -(-interval.start // step) * step
        starts.extend(range(first, interval.end, step))
    return starts


def has_conflict(
    candidate: TimeRange,
    bookings: Iterable[Booking],
    *,
    buffer_minutes: int = 0,
    exclude_booking_id: str | None = None,
) -> bool:
    """True if *candidate* overlaps a confirmed booking on the same day.

    Overlap is half-open, so a candidate ending exactly when a booking
    starts does not conflict unless *buffer_minutes* widens the booking.
    """
    for booking in bookings:
        if booking.status != "confirmed":
            continue
        if exclude_booking_id is not None and booking.booking_id == exclude_booking_id:
            continue
        if candidate.day is not None and not occurs_on(booking, candidate.day):
            continue
        booked_start = to_minutes(booking.start_time) - buffer_minutes
        booked_end = to_minutes(booking.end_time) + buffer_minutes
        if candidate.start < booked_end and candidate.end > booked_start:
            return True
    return False


def conflicting_dates(
    slot: BookingSlot,
    bookings: Iterable[Booking],
    *,
    buffer_minutes: int = 0,
    exclude_booking_id: str | None = None,
) -> list[date]:
    """Occurrence dates of *slot* that clash with a confirmed booking."""
    bookings = list(bookings)
    return [
        day
        for day in occurrence_dates(slot)
        if has_conflict(
            TimeRange.on(day, slot.start_time, slot.end_time),
            bookings,
            buffer_minutes=buffer_minutes,
            exclude_booking_id=exclude_booking_id,
        )
    ]
