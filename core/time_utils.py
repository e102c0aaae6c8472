from datetime import datetime, timedelta, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from core.config import settings

LOCAL_TZ = ZoneInfo(settings.TIMEZONE)
UTC = ZoneInfo("UTC")

def get_current_time(tz: Optional[tzinfo] = None) -> datetime:
    """Returns the current time in the configured zone."""
    return datetime.now(tz or LOCAL_TZ)

def to_local(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Converts a datetime object to the configured zone."""
    if dt.tzinfo is None:
        # Assume naive datetimes from DB are UTC
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(tz or LOCAL_TZ)

def start_of_local_day(now: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Midnight of the local calendar day that contains `now`."""
    local = to_local(now, tz)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)

def local_day_window(now: datetime, tz: Optional[tzinfo] = None) -> Tuple[datetime, datetime]:
    """
    Returns the half-open window [start, end) of the local day containing `now`.

    Aware datetime arithmetic is wall-clock, so `end` is always the next local
    midnight, even across a DST change.
    """
    start = start_of_local_day(now, tz)
    return start, start + timedelta(hours=24)

def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes (from clients or the DB) are taken to be UTC."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt
