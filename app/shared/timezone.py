"""
Centralized week/timezone resolution for weekly plans.
Every "what week is it for this supplier" decision should go through this module.
"""

import logging
from datetime import date, datetime, timezone as dt_timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")


def get_utc_now() -> datetime:
    """
    Get current datetime in UTC (timezone-aware).

    Returns:
        datetime: Current time in UTC
    """
    return datetime.now(tz=dt_timezone.utc)


def get_zone(timezone: Optional[str]) -> ZoneInfo:
    """
    Resolve an IANA timezone name, falling back to UTC.

    Never raises: a missing, empty or unknown name resolves to UTC.

    Example:
        >>> get_zone("Europe/Vilnius")
        zoneinfo.ZoneInfo(key='Europe/Vilnius')
        >>> get_zone("Mars/Olympus")
        zoneinfo.ZoneInfo(key='UTC')
    """
    if not timezone:
        return UTC
    try:
        return ZoneInfo(timezone)
    except Exception:
        logger.warning(f"Invalid timezone '{timezone}', falling back to UTC")
        return UTC


def is_valid_timezone(timezone: Optional[str]) -> bool:
    if not timezone:
        return False
    try:
        ZoneInfo(timezone)
    except Exception:
        return False
    return True


def to_local(now: datetime, timezone: Optional[str]) -> datetime:
    """
    Convert an instant to the supplier's local wall-clock time.
    Naive datetimes are treated as UTC.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=dt_timezone.utc)
    return now.astimezone(get_zone(timezone))


def resolve_local_iso_week(now: Optional[datetime], timezone: Optional[str]) -> Tuple[int, int]:
    """
    Get the ISO (week-year, week) pair for `now` in the given timezone.

    Uses the ISO week-year, not the calendar year: 2024-12-30 is (2025, 1).
    """
    local = to_local(now or get_utc_now(), timezone)
    iso = local.isocalendar()
    return iso[0], iso[1]


def is_week_expired(
    year: int,
    week: int,
    timezone: Optional[str],
    now: Optional[datetime] = None
) -> bool:
    """
    True iff (year, week) is strictly before the supplier's current ISO week.
    The current week is never expired, regardless of the time of day.
    """
    current_year, current_week = resolve_local_iso_week(now, timezone)
    return year < current_year or (year == current_year and week < current_week)


def weeks_in_iso_year(year: int) -> int:
    """Number of ISO weeks in a week-year (52 or 53). Dec 28 is always in the last week."""
    return date(year, 12, 28).isocalendar()[1]


def is_monday_midnight(timezone: Optional[str], now: Optional[datetime] = None) -> bool:
    """True during the first hour of Monday in the given timezone."""
    local = to_local(now or get_utc_now(), timezone)
    return local.isoweekday() == 1 and local.hour == 0


def expiration_window(current_year: int, current_week: int, lookback_weeks: int) -> Tuple[int, int]:
    """
    Start (year, week) of the sweeper lookback window.

    Note:
        Wrapping into the previous year assumes it had 52 weeks. ISO years with
        53 weeks shift the window start by one week; kept as-is until the
        intended semantics are confirmed.
    """
    min_week = current_week - lookback_weeks
    if min_week > 0:
        return current_year, min_week
    return current_year - 1, 52 + min_week


def is_due_for_expiration(
    year: int,
    week: int,
    current_year: int,
    current_week: int,
    lookback_weeks: int
) -> bool:
    """Python mirror of the sweeper query filter for a single (year, week)."""
    min_year, min_week = expiration_window(current_year, current_week, lookback_weeks)
    if year < min_year:
        return True
    if year == min_year and min_year < current_year and week >= min_week:
        return True
    return year == current_year and week < current_week
