"""Date manipulation utilities"""

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from wallet_guard.domain.exceptions import ValidationError


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def load_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown timezone: {name!r}") from None


def to_local(value: datetime, tz_name: str) -> datetime:
    return ensure_utc(value).astimezone(load_timezone(tz_name))


def month_start(value: datetime, tz_name: str) -> datetime:
    """First instant of the local calendar month containing value, in UTC"""
    local = to_local(value, tz_name)
    start = local.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return start.astimezone(timezone.utc)


def month_key(value: datetime, tz_name: str) -> tuple[int, int]:
    """(year, month) of value in the given timezone"""
    local = to_local(value, tz_name)
    return local.year, local.month


def local_hour(value: datetime, tz_name: str) -> int:
    return to_local(value, tz_name).hour
