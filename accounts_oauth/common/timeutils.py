from datetime import datetime, timezone


def utc_now() -> datetime:
    """
    Get the current UTC time.

    Services call this through the module (``timeutils.utc_now()``) so tests
    can move the clock.
    """
    return datetime.now(timezone.utc)


def as_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime read back from the database to aware UTC.

    SQLite hands back naive values even for ``DateTime(timezone=True)``
    columns; those are stored in UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_timestamp(dt: datetime) -> int:
    """Convert a datetime to integer epoch seconds."""
    return int(as_utc(dt).timestamp())
