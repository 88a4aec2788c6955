"""
12-hour wall-clock times as exchanged with clients ("9:30 AM", "02:30 pm").

Schedules store ``datetime.time`` values; everything that crosses the API
boundary goes through ``parse_clock`` / ``format_clock``.
"""
import re
from datetime import time

CLOCK_RE = re.compile(r"^(0?[1-9]|1[0-2]):([0-5]\d)\s?(AM|PM)$", re.IGNORECASE)

MINUTES_PER_DAY = 24 * 60


def parse_clock(value: str) -> time:
    """Parse ``H:MM AM/PM`` into a ``time``. Raises ``ValueError`` on anything else."""
    if not isinstance(value, str):
        raise ValueError("time must be a string in H:MM AM/PM format")
    match = CLOCK_RE.match(value)
    if not match:
        raise ValueError(f'Invalid time "{value}". Use HH:MM AM/PM (e.g., "09:30 AM")')
    hours = int(match.group(1))
    minutes = int(match.group(2))
    period = match.group(3).upper()
    if period == "PM" and hours != 12:
        hours += 12
    if period == "AM" and hours == 12:
        hours = 0
    return time(hours, minutes)


def format_clock(value: time) -> str:
    period = "PM" if value.hour >= 12 else "AM"
    display = value.hour % 12 or 12
    return f"{display}:{value.minute:02d} {period}"


def normalize_clock(value: str) -> str:
    """Canonical spelling of a valid clock string: no leading zero, one space, upper-case period."""
    match = CLOCK_RE.match(value)
    if not match:
        raise ValueError(f'Invalid time "{value}". Use HH:MM AM/PM (e.g., "09:30 AM")')
    return f"{int(match.group(1))}:{match.group(2)} {match.group(3).upper()}"


def to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def as_time(value: time | str) -> time:
    return value if isinstance(value, time) else parse_clock(value)
