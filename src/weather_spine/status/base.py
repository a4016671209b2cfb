"""
Base status store interface.

A store keeps one versioned ``JobRecord`` per job id. Subclasses supply the
three storage primitives (``create``, ``_read`` and ``_compare_and_swap``)
plus ``list``; the read-modify-write cycle of ``fold`` lives here so every
backend retries conflicts the same way.
"""

import random
import time
from abc import ABC, abstractmethod

import structlog

from weather_spine.errors import ConcurrencyConflict
from weather_spine.models import JobRecord, JobStatus, ResultEntry

logger = structlog.get_logger()


class JobStore(ABC):
    """Abstract base class for job status stores."""

    name = "base"

    def __init__(self, max_attempts: int = 20, retry_delay: float = 0.01):
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    @abstractmethod
    def create(self, record: JobRecord) -> JobRecord:
        """
        Persist a new record.

        Raises:
            AlreadyExists: If a record with the same job id exists
        """
        ...

    @abstractmethod
    def _read(self, job_id: str) -> tuple[JobRecord, int]:
        """
        Read a record together with its version token.

        Raises:
            NotFound: If no record exists for job_id
        """
        ...

    @abstractmethod
    def _compare_and_swap(self, record: JobRecord, expected_version: int) -> int:
        """
        Write ``record`` only if the stored version still equals
        ``expected_version``. Returns the new version.

        Raises:
            ConcurrencyConflict: If another writer got there first
        """
        ...

    @abstractmethod
    def list(self) -> list[JobRecord]:
        """Snapshot of all records. No ordering guarantee."""
        ...

    def get(self, job_id: str) -> JobRecord:
        """
        Get a record by job id.

        Raises:
            NotFound: If no record exists for job_id
        """
        record, _ = self._read(job_id)
        return record

    def fold(self, job_id: str, entry: ResultEntry) -> JobRecord:
        """
        Merge one unit's result into the job record.

        Appends ``entry`` and bumps ``processed`` unless the ordinal was
        already folded, flips the job to completed when the last unit lands,
        and writes back with a version check. Conflicts re-run the whole
        cycle, up to ``max_attempts`` times.

        Raises:
            NotFound: If the record does not exist yet
            ConcurrencyConflict: If every attempt lost the race
        """
        log = logger.bind(job_id=job_id, ordinal=entry.ordinal)

        for attempt in range(1, self.max_attempts + 1):
            current, version = self._read(job_id)
            updated = current.apply(entry)

            if updated is current:
                log.info("fold_duplicate_ignored", processed=current.processed)
                return current

            try:
                self._compare_and_swap(updated, version)
            except ConcurrencyConflict:
                log.debug("fold_conflict", attempt=attempt, version=version)
                self._backoff(attempt)
                continue

            if updated.status == JobStatus.COMPLETED and current.status != JobStatus.COMPLETED:
                log.info("job_completed", total=updated.total, attempts=attempt)
            else:
                log.info(
                    "fold_applied",
                    processed=updated.processed,
                    total=updated.total,
                    attempts=attempt,
                )
            return updated

        log.error("fold_attempts_exhausted", max_attempts=self.max_attempts)
        raise ConcurrencyConflict(
            f"Fold for job {job_id} lost {self.max_attempts} consecutive races",
            job_id=job_id,
            ordinal=entry.ordinal,
        )

    def _backoff(self, attempt: int) -> None:
        if self.retry_delay <= 0:
            return
        ceiling = self.retry_delay * min(attempt, 10)
        time.sleep(random.uniform(0, ceiling))
