"""
Date parsing and elapsed-time labels for post-operative controls.

The short labels (``4d``, ``3w``, ``3m``) are shown next to controls in the
registry; the longer elapsed texts (``3 ay``, ``12 gün``) and Turkish dates are
used in event description notes.
"""

import math
from datetime import date, datetime
from typing import Union

DateLike = Union[date, datetime, str]

# Returned when the control date precedes the surgery date
INVALID_LABEL = "?"

TURKISH_MONTHS = [
    "Ocak", "Şubat", "Mart", "Nisan", "Mayıs", "Haziran",
    "Temmuz", "Ağustos", "Eylül", "Ekim", "Kasım", "Aralık",
]


def parse_datetime(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp or a bare ``YYYY-MM-DD`` date.

    Google Calendar sends ``dateTime`` for timed events and ``date`` for
    all-day events; both are accepted.

    Raises:
        ValueError: If the value is not a recognised timestamp
    """
    if not value or not value.strip():
        raise ValueError("empty timestamp")

    value = value.strip()
    if value.endswith('Z'):
        value = value[:-1] + '+00:00'
    return datetime.fromisoformat(value)


def parse_date(value: DateLike) -> date:
    """Coerce a date, datetime or ISO string to a calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Keep the calendar date as written, ignoring any offset
    return date.fromisoformat(value.strip()[:10])


def days_between(start: DateLike, end: DateLike) -> int:
    """Whole days from start to end (negative when end is earlier)."""
    return (parse_date(end) - parse_date(start)).days


def months_between(start: DateLike, end: DateLike) -> int:
    """Number of full calendar months from start to end."""
    start_day = parse_date(start)
    end_day = parse_date(end)

    months = (end_day.year - start_day.year) * 12 + (end_day.month - start_day.month)
    if months > 0 and end_day.day < start_day.day:
        months -= 1
    elif months < 0 and end_day.day > start_day.day:
        months += 1
    return months


def _round_half_up(value: float) -> int:
    """Round half away from zero for non-negative values."""
    return int(math.floor(value + 0.5))


def control_label(surgery_date: DateLike, control_date: DateLike) -> str:
    """
    Bucket the time elapsed since surgery into a short label.

    Args:
        surgery_date: Date of the surgery
        control_date: Date of the control visit

    Returns:
        ``"{d}d"`` under a week, ``"{w}w"`` up to 25 days, ``"{m}m"`` beyond,
        or ``INVALID_LABEL`` when the control precedes the surgery
    """
    days = days_between(surgery_date, control_date)

    if days < 0:
        return INVALID_LABEL
    if days < 7:
        return f"{days}d"
    if days <= 25:
        return f"{_round_half_up(days / 7)}w"
    return f"{_round_half_up(days / 30)}m"


def elapsed_text(surgery_date: DateLike, other_date: DateLike) -> str:
    """Elapsed time in words: whole months once a month has passed, days otherwise."""
    months = months_between(surgery_date, other_date)
    if months > 0:
        return f"{months} ay"
    return f"{days_between(surgery_date, other_date)} gün"


def format_turkish_date(value: DateLike) -> str:
    """Format as ``05 Şubat 2025``."""
    day = parse_date(value)
    return f"{day.day:02d} {TURKISH_MONTHS[day.month - 1]} {day.year}"
