"""Single source of "now" for the engine.

All timestamps are naive UTC, which is what the database columns store.
Tests replace :func:`now` to move time forward.
"""
from datetime import datetime, timezone


def now() -> datetime:
    """Current UTC time without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    """Render a stored timestamp for the API boundary."""
    return value.isoformat() if value else None


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60
