"""
clubhouse.policy.clock — UTC helpers
=====================================

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, PostgreSQL hands back aware ones.  Policy code compares both, so
every datetime passes through :func:`as_utc` first.
"""

from __future__ import annotations

from datetime import UTC, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
