"""Shared datetime parsing, formatting and manipulation utilities."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current datetime in UTC."""
    return datetime.now(UTC)


def local_now() -> datetime:
    """Get current datetime in local timezone."""
    return datetime.now().astimezone()


def ensure_utc(dt: datetime) -> datetime:
    """Ensure datetime is in UTC timezone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def ensure_aware(dt: datetime) -> datetime:
    """Attach the local timezone to naive datetimes; leave aware ones untouched."""
    if dt.tzinfo is None:
        return dt.astimezone()
    return dt


def serialize_dt(value: datetime) -> str:
    return ensure_aware(value).isoformat()


def deserialize_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return None
    return ensure_aware(parsed)


def parse_provider_time(value: str, utc_offset_seconds: int | None = None) -> datetime:
    """Parse provider wall-clock timestamps ("2025-06-21T05:47") into aware datetimes.

    Open-Meteo reports local wall-clock times without an offset when called with
    ``timezone=auto`` and puts the offset in ``utc_offset_seconds``.
    """
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        return parsed
    if utc_offset_seconds is None:
        return parsed.astimezone()
    return parsed.replace(tzinfo=timezone(timedelta(seconds=utc_offset_seconds)))


def add_minutes(dt: datetime, minutes: float) -> datetime:
    return dt + timedelta(minutes=minutes)


def format_time(dt: datetime) -> tuple[str, str]:
    """Split a datetime into a 12-hour clock string and its AM/PM period.

    Examples:
        - 05:47 -> ("5:47", "AM")
        - 00:05 -> ("12:05", "AM")
        - 18:00 -> ("6:00", "PM")
    """
    period = "PM" if dt.hour >= 12 else "AM"
    display_hour = dt.hour % 12 or 12
    return f"{display_hour}:{dt.minute:02d}", period


def format_time_label(dt: datetime) -> str:
    clock, period = format_time(dt)
    return f"{clock} {period}"


def format_time_range(start: datetime, end: datetime) -> str:
    return f"{format_time_label(start)} - {format_time_label(end)}"


def format_minute_offset(minutes: float) -> str:
    """Format a signed minute offset ("+5 min", "-30 min", "0 min")."""
    whole = int(round(minutes))
    if whole > 0:
        return f"+{whole} min"
    return f"{whole} min"


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)
