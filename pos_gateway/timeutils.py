"""
Date/time helpers shared by the services.

Backend timestamps travel as ISO-8601 strings; "today" and hourly
buckets are computed in the restaurant's local timezone.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from pos_gateway.core.config import get_settings


def local_zone() -> ZoneInfo:
    return ZoneInfo(get_settings().timezone)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utcnow_iso() -> str:
    return utcnow().isoformat()


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a backend timestamp into an aware datetime.

    Naive values are assumed to be UTC. ``None`` passes through.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def start_of_day(day: Union[date, datetime], tz: Optional[ZoneInfo] = None) -> datetime:
    tz = tz or local_zone()
    if isinstance(day, datetime):
        day = day.astimezone(tz).date() if day.tzinfo else day.date()
    return datetime.combine(day, time.min, tzinfo=tz)


def end_of_day(day: Union[date, datetime], tz: Optional[ZoneInfo] = None) -> datetime:
    return start_of_day(day, tz) + timedelta(days=1) - timedelta(microseconds=1)


def hour_label(moment: datetime) -> str:
    """Format an hour the short way: 12AM, 1AM, ... 11PM."""
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}{suffix}"
