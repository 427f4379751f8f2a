"""
Time-of-day helpers. All slot and shift arithmetic is done in integer
minutes since midnight; "HH:MM" strings only exist at the record boundary.
"""
import re
from datetime import date, datetime, time, tzinfo
from typing import Optional

MINUTES_PER_DAY = 24 * 60

_HHMM_RE = re.compile(r"^(\d{2}):(\d{2})$")


def to_minutes(value: str) -> int:
    """
    Parse "HH:MM" into minutes since midnight.
    "24:00" is accepted as end-of-day so a shift or working day can close at midnight.

    Raises ValueError on anything else.
    """
    match = _HHMM_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid time {value!r}, expected HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes != 0):
        raise ValueError(f"Invalid time {value!r}, out of range")
    return hours * 60 + minutes


def format_minutes(total: int) -> str:
    """Inverse of to_minutes."""
    if not 0 <= total <= MINUTES_PER_DAY:
        raise ValueError(f"Minute offset {total} is outside a single day")
    return f"{total // 60:02d}:{total % 60:02d}"


def is_hhmm(value: str) -> bool:
    try:
        to_minutes(value)
    except ValueError:
        return False
    return True


def minutes_between(first: str, second: str) -> int:
    """Absolute distance in minutes between two HH:MM values."""
    return abs(to_minutes(first) - to_minutes(second))


def slot_start_datetime(slot_date: date, start: str, tz: Optional[tzinfo] = None) -> datetime:
    """Combine a date and HH:MM start into a datetime in the shop timezone."""
    total = to_minutes(start)
    return datetime.combine(slot_date, time(total // 60, total % 60), tzinfo=tz)
