"""Centralized datetime utilities for consistent timezone handling.

Database columns hold naive UTC datetimes; the scheduling engine works with
aware UTC datetimes and converts at the persistence boundary.

Usage:
    from app.core.datetime_utils import target_instant_utc, is_today_in_timezone

    # 09:00 wall clock in Ho Chi Minh City on 2024-10-09, as UTC
    target = target_instant_utc("2024-10-09", "Asia/Ho_Chi_Minh", 9)

    # Is the user's recurring date today where they live?
    if is_today_in_timezone(user.birthday, user.timezone, now=now):
        ...

Wall-clock times that fall into a DST gap or overlap resolve with zoneinfo's
fold=0 rule: gap times take the offset in force before the transition (the
result lands after the gap), overlapping times take the first occurrence.
"""

import calendar
import math
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.errors import InvalidTimezoneError

# Largest delay the transport accepts for a single message
MAX_DELAY_SECONDS = 900


def utc_now() -> datetime:
    """Get current UTC time as naive datetime.

    Returns naive datetime for database compatibility.
    """
    return datetime.now(UTC).replace(tzinfo=None)


def utc_now_aware() -> datetime:
    """Get current UTC time as an aware datetime."""
    return datetime.now(UTC)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert a datetime to naive UTC.

    Args:
        dt: Datetime to convert (can be aware or naive)

    Returns:
        Naive UTC datetime for database compatibility
    """
    if dt.tzinfo is None:
        # Already naive, assume it's UTC
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def to_aware_utc(dt: datetime) -> datetime:
    """Attach UTC to a naive datetime read from the database."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def get_cutoff(now: datetime, hours: int = 0, days: int = 0) -> datetime:
    """Get naive UTC cutoff datetime for filtering queries."""
    return to_naive_utc(now) - timedelta(hours=hours, days=days)


# =============================================================================
# Per-user timezone utilities
# =============================================================================

# Common valid IANA timezones, with both ends of the offset range
COMMON_TIMEZONES = [
    "UTC",
    "Pacific/Kiritimati",
    "Pacific/Auckland",
    "Australia/Sydney",
    "Asia/Tokyo",
    "Asia/Seoul",
    "Asia/Shanghai",
    "Asia/Singapore",
    "Asia/Ho_Chi_Minh",
    "Asia/Kolkata",
    "Asia/Dubai",
    "Europe/Moscow",
    "Europe/Berlin",
    "Europe/Paris",
    "Europe/London",
    "America/Sao_Paulo",
    "America/New_York",
    "America/Chicago",
    "America/Denver",
    "America/Los_Angeles",
    "Pacific/Honolulu",
    "Pacific/Pago_Pago",
    "Etc/GMT+12",
]


def is_valid_timezone(tz_name: str) -> bool:
    """Check if a timezone name is valid IANA identifier.

    Args:
        tz_name: Timezone string (e.g., "America/New_York")

    Returns:
        True if valid IANA timezone
    """
    try:
        ZoneInfo(tz_name)
        return True
    except (ZoneInfoNotFoundError, KeyError, ValueError):
        return False


def get_zone(tz_name: str) -> ZoneInfo:
    """Resolve an IANA timezone, raising InvalidTimezoneError if unknown."""
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, KeyError, ValueError) as e:
        raise InvalidTimezoneError(f"Invalid timezone: {tz_name!r}") from e


def parse_date(value: str | date) -> date:
    """Parse a YYYY-MM-DD string (or pass a date through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def format_month_day(value: str | date) -> str:
    """Format a date as the MM-DD recurrence index key."""
    return parse_date(value).strftime("%m-%d")


def occurrence_date(recurrence: str | date, year: int) -> date:
    """Get the occurrence of a yearly recurring date in a given year.

    Feb 29 recurrences are observed on Feb 28 in non-leap years.
    """
    source = parse_date(recurrence)
    if source.month == 2 and source.day == 29 and not calendar.isleap(year):
        return date(year, 2, 28)
    return source.replace(year=year)


def month_day_keys(day: date) -> list[str]:
    """Get the recurrence index keys whose occurrence falls on this day."""
    keys = [format_month_day(day)]
    if day.month == 2 and day.day == 28 and not calendar.isleap(day.year):
        keys.append("02-29")
    return keys


def local_date(timezone: str, now: datetime | None = None) -> date:
    """Get the calendar date currently observed in a timezone."""
    now = now or utc_now_aware()
    return to_aware_utc(now).astimezone(get_zone(timezone)).date()


def target_instant_utc(date_string: str | date, timezone: str, hour: int) -> datetime:
    """Interpret hour:00:00 on a calendar day in a timezone as a UTC instant.

    Args:
        date_string: Calendar day (YYYY-MM-DD)
        timezone: IANA timezone string
        hour: Wall-clock hour (0-23)

    Returns:
        Aware UTC datetime
    """
    day = parse_date(date_string)
    local = datetime.combine(day, time(hour=hour), tzinfo=get_zone(timezone))
    return local.astimezone(UTC)


def is_today_in_timezone(
    date_string: str | date,
    timezone: str,
    now: datetime | None = None,
) -> bool:
    """Check whether a recurring date's month and day is today in a timezone.

    The year of date_string is ignored.
    """
    today = local_date(timezone, now)
    return occurrence_date(date_string, today.year) == today


def remaining_delay_seconds(
    date_string: str | date,
    timezone: str,
    hour: int,
    cap: int = MAX_DELAY_SECONDS,
    now: datetime | None = None,
) -> int:
    """Whole seconds until the target instant, clamped to [0, cap]."""
    now = to_aware_utc(now or utc_now_aware())
    target = target_instant_utc(date_string, timezone, hour)
    delay = math.floor((target - now).total_seconds())
    return max(0, min(cap, delay))


def start_of_local_day_utc(day: date, timezone: str) -> datetime:
    """UTC instant at which a calendar day begins in a timezone."""
    return target_instant_utc(day, timezone, 0)
