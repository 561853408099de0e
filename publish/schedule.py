"""Next-send computation for recurring weekly digest availability."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "Europe/London"
SCAN_DAYS = 7


class ScheduleError(ValueError):
    """Availability data cannot be interpreted (bad timezone or clock time)."""


def normalize_weekday(day: int) -> int:
    """ISO weekday with Sunday accepted as either 0 or 7."""
    return 7 if day == 0 else day


def _parse_time(value: str) -> time:
    try:
        hour, minute = value.strip().split(":")[:2]
        return time(hour=int(hour), minute=int(minute))
    except ValueError as exc:
        raise ScheduleError(f"invalid time of day: {value!r}") from exc


def _load_zone(tz_name: Optional[str], default: str) -> ZoneInfo:
    name = tz_name or default
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ScheduleError(f"unknown timezone: {name!r}") from exc


def compute_next_send(
    days: Iterable[int],
    hours: Iterable[str],
    tz_name: Optional[str],
    *,
    eligible: bool = True,
    now: Optional[datetime] = None,
    default_timezone: str = DEFAULT_TIMEZONE,
) -> Optional[datetime]:
    """Earliest slot at or after ``now`` on an allowed weekday and clock time.

    The scan covers today plus the next seven days in the reader's timezone.
    Returns ``None`` when the reader is not eligible or no slot exists; the
    result is always UTC.
    """
    if not eligible:
        return None
    zone = _load_zone(tz_name, default_timezone)
    allowed_days = {normalize_weekday(int(day)) for day in days}
    clock_times = sorted({_parse_time(value) for value in hours})
    if not allowed_days or not clock_times:
        return None

    current = (now or datetime.now(timezone.utc)).astimezone(zone)
    for offset in range(SCAN_DAYS + 1):
        day = current.date() + timedelta(days=offset)
        if day.isoweekday() not in allowed_days:
            continue
        for clock in clock_times:
            candidate = datetime.combine(day, clock, tzinfo=zone)
            if candidate >= current:
                return candidate.astimezone(timezone.utc)
    return None
