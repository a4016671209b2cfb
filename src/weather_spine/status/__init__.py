"""Job status store: versioned job records with compare-and-swap folds."""

from datetime import datetime, timedelta

from weather_spine.models import JobRecord, JobStatus, utcnow
from weather_spine.status.base import JobStore
from weather_spine.status.memory import MemoryJobStore

__all__ = [
    "JobStore",
    "MemoryJobStore",
    "get_status_store",
    "set_status_store",
    "reset_status_store",
    "sort_history",
    "find_stuck_jobs",
]


_store: JobStore | None = None


def get_status_store() -> JobStore:
    """Get or create the status store based on configuration."""
    global _store
    if _store is None:
        from weather_spine.config import get_settings

        settings = get_settings()

        if settings.status_store_type == "postgres":
            from weather_spine.status.postgres import PostgresJobStore

            _store = PostgresJobStore(
                max_attempts=settings.fold_max_attempts,
                retry_delay=settings.fold_retry_delay_seconds,
            )
        else:
            _store = MemoryJobStore(
                max_attempts=settings.fold_max_attempts,
                retry_delay=settings.fold_retry_delay_seconds,
            )

    return _store


def set_status_store(store: JobStore) -> None:
    """Set the store instance (useful for testing)."""
    global _store
    _store = store


def reset_status_store() -> None:
    """Reset store instance (for testing)."""
    global _store
    _store = None


def sort_history(records: list[JobRecord]) -> list[JobRecord]:
    """Most recently started first."""
    return sorted(records, key=lambda r: r.start_time, reverse=True)


def find_stuck_jobs(
    records: list[JobRecord],
    older_than: timedelta,
    now: datetime | None = None,
) -> list[JobRecord]:
    """Jobs still processing after ``older_than``: candidates for reconciliation."""
    cutoff = (now or utcnow()) - older_than
    return sort_history(
        [r for r in records if r.status == JobStatus.PROCESSING and r.start_time < cutoff]
    )
