"""UTC timestamp helpers shared by services and schemas."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values (SQLite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_ts(value: datetime | None) -> str | None:
    """ISO-8601 UTC with microseconds and a trailing 'Z'."""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds").replace("+00:00", "Z")
