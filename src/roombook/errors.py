from __future__ import annotations

from datetime import date


class UnsupportedRecurrencePattern(ValueError):
    def __init__(self, pattern: object) -> None:
        super().__init__(f"Unsupported recurrence pattern: {pattern!r}")
        self.pattern = pattern


class InvalidTimeFormat(ValueError):
    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid time of day: {value!r}")
        self.value = value


class InvalidRange(ValueError):
    pass


class InvalidStatusTransition(Exception):
    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"Cannot move booking from {current!r} to {requested!r}")
        self.current = current
        self.requested = requested


class BookingConflictError(Exception):
    def __init__(self, dates: list[date]) -> None:
        joined = ", ".join(d.isoformat() for d in dates)
        super().__init__(f"Time slot conflicts with a confirmed booking on: {joined}")
        self.dates = dates
