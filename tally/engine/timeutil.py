"""
tally.engine.timeutil — Timestamp normalization
================================================

All timestamps are persisted in UTC.  Some backends (SQLite) hand them
back naive, so every comparison goes through :func:`to_utc` first.
"""

from __future__ import annotations

from datetime import UTC, datetime, tzinfo


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def in_zone(value: datetime, zone: tzinfo) -> datetime:
    """Express *value* in *zone* (naive values are taken as UTC)."""
    return to_utc(value).astimezone(zone)
