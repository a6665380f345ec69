"""Shared timestamp helpers for the storage layer and the query engine."""

from __future__ import annotations

from datetime import UTC, datetime


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def _parse_iso(ts: str | None) -> datetime | None:
    """Parse an ISO timestamp, handling timezone-aware and naive formats.

    Naive timestamps are treated as UTC. Returns None if the timestamp
    cannot be parsed, so callers decide their own fallback instead of
    silently substituting the current time.
    """
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt
