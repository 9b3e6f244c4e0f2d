"""Shared datetime helpers and spoken time formatting."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

_GREETING_RULES: tuple[tuple[int, int, str], ...] = (
    (5, 12, "Good morning"),
    (12, 17, "Good afternoon"),
    (17, 21, "Good evening"),
)


def local_now() -> datetime:
    """Get current datetime in local timezone."""
    return datetime.now().astimezone()


def ensure_local(dt: datetime) -> datetime:
    """Ensure datetime is in local timezone."""
    return dt.astimezone()


def ensure_utc(dt: datetime) -> datetime:
    """Ensure datetime is in UTC timezone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def serialize_dt(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    return value.isoformat()


def deserialize_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def greeting_for_hour(hour: int) -> str:
    """Map a local hour (0-23) to the briefing greeting."""
    for start, end, greeting in _GREETING_RULES:
        if start <= hour < end:
            return greeting
    return "Good night"


def format_spoken_time(value: datetime) -> str:
    """Format a datetime as ``7:05 AM`` for speech."""
    hour = value.hour % 12 or 12
    suffix = "PM" if value.hour >= 12 else "AM"
    return f"{hour}:{value.minute:02d} {suffix}"


def format_spoken_date(value: datetime) -> str:
    """Format a datetime as ``Monday, January 6`` for speech."""
    return f"{value.strftime('%A')}, {value.strftime('%B')} {value.day}"


def describe_time_ago(then: datetime, now: datetime) -> str:
    """Describe the age of an observation in coarse spoken units."""
    hours = int((now - then) / timedelta(hours=1))
    if hours < 1:
        return "less than an hour ago"
    if hours < 24:
        return "1 hour ago" if hours == 1 else f"{hours} hours ago"
    days = hours // 24
    return "yesterday" if days == 1 else f"{days} days ago"
