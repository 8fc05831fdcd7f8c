"""Datetime utilities."""

from datetime import datetime, timezone

from dateutil.parser import parse as parse_date


def utc_now() -> datetime:
    """Return the current time as a tz-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value, default: datetime | None = None) -> datetime:
    """Parse a timestamp from an ISO/RFC string or datetime.

    Missing or unparsable values fall back to ``default`` (the current UTC
    time when not given). The result is always tz-aware UTC.
    """
    if value is None or value == "":
        return default if default is not None else utc_now()
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        return default if default is not None else utc_now()

    try:
        parsed = parse_date(value)
    except (ValueError, OverflowError):
        return default if default is not None else utc_now()
    return ensure_utc(parsed)
