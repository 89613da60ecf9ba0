from __future__ import annotations

from datetime import date, timedelta
from typing import Protocol

from .errors import InvalidRange, UnsupportedRecurrencePattern
from .models import NO_RECURRENCE, RECURRENCE_PATTERNS, Booking, Occurrence


class Recurring(Protocol):
    date: date
    is_recurring: bool
    recurrence_pattern: str | None
    recurrence_end_date: date | None


def _next_month(day: date) -> date:
    # Same day-of-month one month later, overflowing past short months
    # (2025-01-31 -> 2025-03-03) instead of clamping to the month end.
    first_of_next = date(day.year + day.month // 12, day.month % 12 + 1, 1)
    return first_of_next + timedelta(days=day.day - 1)


def advance(day: date, pattern: str) -> date:
    if pattern not in RECURRENCE_PATTERNS:
        raise UnsupportedRecurrencePattern(pattern)
    try:
        if pattern == "Daily":
            return day + timedelta(days=1)
        if pattern == "Weekly":
            return day + timedelta(days=7)
        return _next_month(day)
    except (OverflowError, ValueError) as exc:
        raise InvalidRange(f"no {pattern.lower()} occurrence after {day.isoformat()}") from exc


def expand(start: date, pattern: str | None, end: date | None) -> list[date]:
    """Every occurrence date from *start* through *end*, inclusive and ascending.

    A missing pattern (or the form value ``"No"``) is a single occurrence.
    """
    if pattern in NO_RECURRENCE:
        return [start]
    if pattern not in RECURRENCE_PATTERNS:
        raise UnsupportedRecurrencePattern(pattern)
    if end is None:
        raise InvalidRange("a recurring series needs an end date")

    dates: list[date] = []
    cursor = start
    while cursor <= end:
        dates.append(cursor)
        try:
            cursor = advance(cursor, pattern)
        except InvalidRange:
            # calendar ends before the series does
            break
    return dates


def occurrence_dates(booking: Recurring) -> list[date]:
    if not booking.is_recurring:
        return [booking.date]
    return expand(booking.date, booking.recurrence_pattern, booking.recurrence_end_date)


def occurs_on(booking: Recurring, day: date) -> bool:
    if day < booking.date:
        return False
    if not booking.is_recurring:
        return day == booking.date
    if booking.recurrence_end_date is not None and day > booking.recurrence_end_date:
        return False
    dates = expand(booking.date, booking.recurrence_pattern, min(day, booking.recurrence_end_date or day))
    return bool(dates) and dates[-1] == day


def occurrences(booking: Booking, start: date | None = None, end: date | None = None) -> list[Occurrence]:
    """Calendar view of *booking*, optionally limited to ``[start, end]``."""
    return [
        Occurrence(
            date=day,
            booking_id=booking.booking_id,
            recurring_group_id=booking.recurring_group_id,
            room_id=booking.room_id,
            start_time=booking.start_time,
            end_time=booking.end_time,
            status=booking.status,
            title=booking.title,
        )
        for day in occurrence_dates(booking)
        if (start is None or day >= start) and (end is None or day <= end)
    ]
