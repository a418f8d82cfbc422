"""UTC-everywhere time handling. Eliminates timezone bugs at the source."""

from datetime import datetime, timedelta, timezone

# Registrar periods are counted in flat 365-day years.
DAYS_PER_YEAR = 365


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Raises ValueError if string has no timezone info.
    """
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)


def add_years(dt: datetime, years: int) -> datetime:
    """Shift a datetime forward by whole registration years (365 days each)."""
    return dt + timedelta(days=DAYS_PER_YEAR * years)


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed from `earlier` to `later` (negative if reversed)."""
    return (to_utc(later) - to_utc(earlier)).days


def to_epoch(dt: datetime) -> float:
    """Seconds since the epoch for a timezone-aware datetime."""
    return to_utc(dt).timestamp()


def from_epoch(seconds: float) -> datetime:
    """UTC datetime from seconds since the epoch."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
