"""Date-key utilities for happenings_lite.

A date key is a ``YYYY-MM-DD`` calendar-day string in one fixed civil
timezone. It is the identity unit for occurrences, so it must never be
derived by truncating a UTC timestamp. All arithmetic here works on
``datetime.date`` values, which carry no offset and therefore cannot be
shifted by daylight-saving transitions.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, date, datetime, timedelta
from functools import lru_cache
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

# Civil timezone all date keys are expressed in
DEFAULT_TIMEZONE = "America/Denver"

DATE_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

# Index 0 is Sunday to match the upstream day_of_week convention
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
DAY_ABBREVS = ("SU", "MO", "TU", "WE", "TH", "FR", "SA")
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


@lru_cache(maxsize=16)
def get_zone(tz_name: str = DEFAULT_TIMEZONE) -> ZoneInfo:
    """Return a cached ZoneInfo for ``tz_name``.

    Zone objects are immutable, so one instance per name is shared by every
    caller for the life of the process.

    Raises:
        ZoneInfoNotFoundError: If the name is not a known IANA zone
    """
    return ZoneInfo(tz_name)


def is_known_timezone(tz_name: str) -> bool:
    """Check whether ``tz_name`` resolves to an IANA zone."""
    try:
        get_zone(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def date_key_from_date(d: date) -> str:
    """Format a calendar date as a date key."""
    return d.isoformat()


def date_key_from_datetime(dt: datetime, tz_name: str = DEFAULT_TIMEZONE) -> str:
    """Convert an instant to the date key of the civil day it falls on.

    Naive datetimes are taken to be UTC instants, matching how the upstream
    store hands out timestamps.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(get_zone(tz_name)).date().isoformat()


def today_key(now: Optional[datetime] = None, tz_name: str = DEFAULT_TIMEZONE) -> str:
    """Return today's date key in the civil timezone.

    This is a caller-side helper: request handlers compute it once and pass
    the result into the engine so every computation shares the same "today".
    """
    if now is None:
        now = datetime.now(UTC)
    return date_key_from_datetime(now, tz_name)


def is_valid_date_key(value: object) -> bool:
    """Return True for a strict ``YYYY-MM-DD`` string naming a real date."""
    if not isinstance(value, str) or not DATE_KEY_PATTERN.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def coerce_date_key(value: object) -> Optional[str]:
    """Return ``value`` if it is a valid date key, otherwise None.

    Scheduling rows sometimes carry timestamps instead of plain dates; only
    the leading calendar day of an ISO date string is kept.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        return value.isoformat()
    if not isinstance(value, str):
        return None
    candidate = value.strip()[:10]
    if is_valid_date_key(candidate):
        return candidate
    logger.debug("Ignoring malformed date key %r", value)
    return None


def parse_date_key(date_key: str) -> date:
    """Parse a date key into a ``date``.

    Raises:
        ValueError: If the key is not a valid date key
    """
    if not is_valid_date_key(date_key):
        raise ValueError(f"Invalid date key: {date_key!r}. Expected YYYY-MM-DD.")
    return date.fromisoformat(date_key)


def add_days(date_key: str, days: int) -> str:
    """Add (or subtract) whole calendar days to a date key."""
    return (parse_date_key(date_key) + timedelta(days=days)).isoformat()


def days_between(start_key: str, end_key: str) -> int:
    """Number of days from ``start_key`` to ``end_key`` (negative if reversed)."""
    return (parse_date_key(end_key) - parse_date_key(start_key)).days


def weekday_index(d: date) -> int:
    """Day-of-week index of a date, 0=Sunday .. 6=Saturday."""
    return (d.weekday() + 1) % 7


def day_of_week_index(date_key: str) -> int:
    """Day-of-week index of a date key, 0=Sunday .. 6=Saturday."""
    return weekday_index(parse_date_key(date_key))


def day_of_week_name(date_key: str) -> str:
    """Full day name for a date key, e.g. "Saturday"."""
    return DAY_NAMES[day_of_week_index(date_key)]


def format_date_key_short(date_key: str) -> str:
    """Format a date key as "Sun, Jan 18"."""
    d = parse_date_key(date_key)
    return f"{DAY_NAMES[weekday_index(d)][:3]}, {MONTH_NAMES[d.month - 1][:3]} {d.day}"


def format_date_key_for_display(date_key: str) -> str:
    """Format a date key as "Sunday, January 18, 2026"."""
    d = parse_date_key(date_key)
    return f"{DAY_NAMES[weekday_index(d)]}, {MONTH_NAMES[d.month - 1]} {d.day}, {d.year}"


def format_date_key_for_email(date_key: str) -> str:
    """Format a date key as "01-18-2026"."""
    d = parse_date_key(date_key)
    return f"{d.month:02d}-{d.day:02d}-{d.year}"


def format_date_group_header(date_key: str, today: str) -> str:
    """Header for a timeline date group: "Today", "Tomorrow" or "Fri, Jan 3"."""
    if date_key == today:
        return "Today"
    if date_key == add_days(today, 1):
        return "Tomorrow"
    return format_date_key_short(date_key)
