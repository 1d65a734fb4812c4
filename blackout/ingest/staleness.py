"""Freshness checks for cached snapshots."""

from datetime import UTC, datetime


def snapshot_age_seconds(captured_at: datetime, now: datetime | None = None) -> float:
    """Seconds elapsed since capture."""
    if now is None:
        now = datetime.now(UTC)
    return (now - _as_utc(captured_at)).total_seconds()


def is_snapshot_fresh(
    captured_at: datetime, max_age_seconds: int, now: datetime | None = None
) -> bool:
    """A snapshot is fresh strictly before max_age_seconds have passed."""
    return snapshot_age_seconds(captured_at, now) < max_age_seconds


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt
