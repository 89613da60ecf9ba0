from __future__ import annotations

import re
from datetime import time

from .errors import InvalidTimeFormat

_TIME_24H = re.compile(r"^(?P<h>[01]?\d|2[0-3]):(?P<m>[0-5]\d)(?::(?P<s>[0-5]\d))?$")
_TIME_12H = re.compile(r"^(?P<h>0?[1-9]|1[0-2]):(?P<m>[0-5]\d)\s*(?P<period>[AaPp][Mm])$")


def parse_time_of_day(value: object) -> time:
    """Parse ``HH:MM``, ``HH:MM:SS`` or a 12-hour label like ``9:30 PM``.

    Anything else raises ``InvalidTimeFormat``; nothing half-parsed leaks out.
    """
    if isinstance(value, time):
        return value.replace(microsecond=0, tzinfo=None)
    if not isinstance(value, str):
        raise InvalidTimeFormat(value)

    text = value.strip()
    if match := _TIME_24H.match(text):
        return time(int(match["h"]), int(match["m"]), int(match["s"] or 0))

    if match := _TIME_12H.match(text):
        hour = int(match["h"]) % 12
        if match["period"].upper() == "PM":
            hour += 12
        return time(hour, int(match["m"]))

    raise InvalidTimeFormat(value)


def to_minutes(value: time | str) -> int:
    t = parse_time_of_day(value)
    return t.hour * 60 + t.minute


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_12h(minutes: int) -> str:
    hour, minute = divmod(minutes, 60)
    period = "PM" if 12 <= hour < 24 else "AM"
    return f"{hour % 12 or 12}:{minute:02d} {period}"
