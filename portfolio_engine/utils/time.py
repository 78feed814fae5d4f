"""Time utilities (UTC)."""

from datetime import datetime, timezone


def now_utc_naive() -> datetime:
    """
    Current time in UTC, returned as naive datetime for DB storage.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def elapsed_ms(started_at: datetime, finished_at: datetime) -> int:
    """Whole milliseconds between two naive timestamps."""
    return int((finished_at - started_at).total_seconds() * 1000)
