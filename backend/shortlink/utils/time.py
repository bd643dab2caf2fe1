"""UTC helpers shared by the workflow and its persistence layer."""
from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return the current timezone-aware UTC time."""

    return dt.datetime.now(dt.timezone.utc)


def as_utc(value: dt.datetime | None) -> dt.datetime | None:
    """Attach UTC to naive values read back from SQLite."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)
