"""Civil-day windows and hour arithmetic in an office's time zone.

All instants returned here are timezone-aware UTC datetimes. A civil day is
resolved to ``[day_start, day_start + 24h)`` where ``day_start`` is local
midnight computed with the zone's offset on that specific date.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DAY_LENGTH = timedelta(hours=24)
MINUTES_PER_DAY = 24 * 60


def resolve_zone(tz_name: str | None) -> ZoneInfo:
    if not tz_name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown time zone %r, falling back to UTC.", tz_name)
        return ZoneInfo("UTC")


def parse_civil_day(value: str | date) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip())


def day_window(civil_date: date, tz_name: str | None) -> tuple[datetime, datetime]:
    zone = resolve_zone(tz_name)
    day_start = datetime.combine(civil_date, time(0, 0), tzinfo=zone).astimezone(timezone.utc)
    return day_start, day_start + DAY_LENGTH


def hour_to_instant(day_start: datetime, hour: int) -> datetime:
    if not 0 <= hour <= 24:
        raise ValueError(f"hour must be between 0 and 24, got {hour}.")
    return day_start + timedelta(hours=hour)


def civil_day(instant: datetime, tz_name: str | None) -> date:
    return instant.astimezone(resolve_zone(tz_name)).date()


def clamp_to_day(instant: datetime, day_start: datetime, day_end: datetime) -> int:
    """Minutes since ``day_start``, pinned to the window edges."""
    total_minutes = max(0, int((day_end - day_start).total_seconds() // 60))
    if instant <= day_start:
        return 0
    if instant >= day_end:
        return total_minutes
    return int((instant - day_start).total_seconds() // 60)


def relative_hours(start: datetime, end: datetime, day_start: datetime, day_end: datetime) -> tuple[int, int]:
    """Whole-hour bounds of ``[start, end)`` within the day, at least one hour long."""
    start_minutes = clamp_to_day(start, day_start, day_end)
    end_minutes = clamp_to_day(end, day_start, day_end)

    start_hour = min(23, max(0, start_minutes // 60))
    end_hour = max(start_hour + 1, min(24, math.ceil(end_minutes / 60)))
    return start_hour, end_hour


def format_minutes(minutes: int, total_minutes: int = MINUTES_PER_DAY) -> str:
    clamped = max(0, min(total_minutes, minutes))
    hours, mins = divmod(clamped, 60)
    return f"{hours:02d}:{mins:02d}"
