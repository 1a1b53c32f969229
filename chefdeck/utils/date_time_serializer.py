import time
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo
from chefdeck.core.config import settings


def current_millis() -> int:
    """Wall-clock time as epoch milliseconds (the wire format of cycle dates)"""
    return int(time.time() * 1000)


def millis_to_datetime(value: int, tz_name: Optional[str] = None) -> datetime:
    """Convert epoch milliseconds to an aware datetime in the configured timezone"""
    tz = ZoneInfo(tz_name or settings.TIMEZONE)
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).astimezone(tz)


def datetime_to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)
