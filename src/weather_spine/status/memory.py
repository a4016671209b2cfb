"""In-process status store for development and tests."""

import threading

import structlog

from weather_spine.errors import AlreadyExists, ConcurrencyConflict, NotFound
from weather_spine.models import JobRecord
from weather_spine.status.base import JobStore

logger = structlog.get_logger()


class MemoryJobStore(JobStore):
    """
    Dictionary-backed store.

    The lock only guards individual reads and the compare-and-swap itself,
    so concurrent folds genuinely race and go through the version check,
    the same as against a shared database. State does not survive the
    process and is not shared between processes.
    """

    name = "memory"

    def __init__(self, max_attempts: int = 20, retry_delay: float = 0.01):
        super().__init__(max_attempts=max_attempts, retry_delay=retry_delay)
        self._records: dict[str, tuple[JobRecord, int]] = {}
        self._lock = threading.Lock()

    def create(self, record: JobRecord) -> JobRecord:
        with self._lock:
            if record.job_id in self._records:
                raise AlreadyExists(f"Job already exists: {record.job_id}", job_id=record.job_id)
            self._records[record.job_id] = (record, 1)

        logger.info(
            "job_created",
            job_id=record.job_id,
            status=record.status.value,
            total=record.total,
        )
        return record

    def _read(self, job_id: str) -> tuple[JobRecord, int]:
        with self._lock:
            stored = self._records.get(job_id)
        if stored is None:
            raise NotFound(f"Job not found: {job_id}", job_id=job_id)
        return stored

    def _compare_and_swap(self, record: JobRecord, expected_version: int) -> int:
        with self._lock:
            stored = self._records.get(record.job_id)
            if stored is None:
                raise NotFound(f"Job not found: {record.job_id}", job_id=record.job_id)
            _, version = stored
            if version != expected_version:
                raise ConcurrencyConflict(
                    f"Version mismatch for job {record.job_id}: "
                    f"expected {expected_version}, found {version}",
                    job_id=record.job_id,
                )
            self._records[record.job_id] = (record, version + 1)
            return version + 1

    def list(self) -> list[JobRecord]:
        with self._lock:
            return [record for record, _ in self._records.values()]
