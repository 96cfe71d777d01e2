"""
Time helpers — UTC storage, local calendar date and time-of-day.

Every timestamp is stored UTC-aware. The attendance "day" and the
minute-of-day used for windows come from ``settings.TIMEZONE_OFFSET``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from staffclock.core.config import settings


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Normalise a potentially-naive timestamp (SQLite) to UTC-aware."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_offset(tz_offset: str) -> timezone:
    """Parse ``+HH:MM`` / ``-HH:MM`` into a fixed-offset timezone."""
    sign = 1 if tz_offset[0] == "+" else -1
    offset_parts = tz_offset[1:].split(":")
    offset_hours = int(offset_parts[0])
    offset_mins = int(offset_parts[1]) if len(offset_parts) > 1 else 0
    return timezone(timedelta(hours=sign * offset_hours, minutes=sign * offset_mins))


def local_tz() -> timezone:
    return parse_offset(settings.TIMEZONE_OFFSET)


def to_local(dt: datetime) -> datetime:
    return ensure_utc(dt).astimezone(local_tz())  # type: ignore[union-attr]


def local_date_str(dt: datetime | None = None) -> str:
    """Calendar date (YYYY-MM-DD) of *dt* in the configured local timezone."""
    return to_local(dt or utc_now()).strftime("%Y-%m-%d")


def local_hhmm(dt: datetime | None = None) -> str:
    return to_local(dt or utc_now()).strftime("%H:%M")


def minute_of_day(dt: datetime) -> int:
    local = to_local(dt)
    return local.hour * 60 + local.minute


def hhmm_to_minutes(value: str) -> int:
    """``"09:30"`` → 570."""
    hours, minutes = value.split(":")[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_hhmm(minutes: int) -> str:
    minutes = max(0, min(minutes, 24 * 60 - 1))
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
