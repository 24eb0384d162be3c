"""Timestamps for run reports."""

from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def normalize_dt(dt: datetime) -> datetime:
    """Return ``dt`` in UTC. Naive datetimes are rejected."""
    if not isinstance(dt, datetime):
        raise TypeError("dt must be a datetime")
    if dt.tzinfo is None:
        raise ValueError("naive datetime is not allowed; timezone-aware required")
    return dt.astimezone(timezone.utc)


def to_rfc3339(dt: datetime) -> str:
    """Render as RFC 3339 in UTC with a 'Z' suffix and microseconds."""
    text = normalize_dt(dt).isoformat(timespec="microseconds")
    return text.replace("+00:00", "Z")


def elapsed_seconds(start: datetime, end: datetime) -> float:
    """Seconds from ``start`` to ``end`` (never negative)."""
    delta = normalize_dt(end) - normalize_dt(start)
    return max(delta.total_seconds(), 0.0)
