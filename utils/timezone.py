"""UTC-everywhere time handling. Eliminates timezone bugs at the source."""

from datetime import datetime, timezone


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



def to_epoch_seconds(dt: datetime) -> int:
    """Whole seconds since the epoch for an aware datetime (floored)."""
    return int(to_utc(dt).timestamp())


def from_epoch_seconds(seconds: int | float) -> datetime:
    """UTC datetime for seconds since the epoch."""
    return datetime.fromtimestamp(seconds, tz=timezone.utc)
