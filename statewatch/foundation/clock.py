"""Timezone-aware clock utilities.

All wall-clock timestamps in statewatch are UTC-aware.  This module is the
single source of real "now"; code that needs deterministic time takes a
scheduler instead (see statewatch.scheduling).
"""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
