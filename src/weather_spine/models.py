"""Domain models: job records, queue messages and result entries."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Opaque work-item descriptor, transported verbatim from resolver to processor.
WorkItem = dict[str, Any]

NO_WORK_ITEMS_MESSAGE = "no work items available"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    return str(uuid.uuid4())


class JobStatus(str, Enum):
    """Lifecycle state of a job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobRequestMessage(BaseModel):
    """Intake-queue message asking for a job's work items to be resolved."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    requested_at: datetime = Field(default_factory=utcnow)
    max_items: int = Field(default=36, ge=0)


class UnitMessage(BaseModel):
    """Units-queue message: one work item of one job."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    item: WorkItem
    ordinal: int = Field(ge=0)
    total: int = Field(gt=0)

    @model_validator(mode="after")
    def _ordinal_in_range(self) -> "UnitMessage":
        if self.ordinal >= self.total:
            raise ValueError(f"ordinal {self.ordinal} out of range for total {self.total}")
        return self


class ResultEntry(BaseModel):
    """Outcome of one processed unit: artifact reference plus metadata."""

    model_config = ConfigDict(frozen=True)

    ordinal: int = Field(ge=0)
    artifact_path: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class JobAccepted(BaseModel):
    """Returned by intake: the job id and when it was accepted."""

    job_id: str
    created_at: datetime


class JobRecord(BaseModel):
    """
    Durable aggregate of a job's progress.

    ``processed`` always equals the number of distinct ordinals in
    ``results``; a unit contributes at most once no matter how often its
    message is delivered.
    """

    job_id: str
    status: JobStatus = JobStatus.PENDING
    start_time: datetime = Field(default_factory=utcnow)
    completed_time: datetime | None = None
    total: int = Field(default=0, ge=0)
    processed: int = Field(default=0, ge=0)
    results: list[ResultEntry] = Field(default_factory=list)
    error_message: str | None = None

    @classmethod
    def processing(cls, job_id: str, total: int) -> "JobRecord":
        """Initial record for a job with ``total`` dispatched units."""
        return cls(job_id=job_id, status=JobStatus.PROCESSING, total=total)

    @classmethod
    def failed(cls, job_id: str, error_message: str = NO_WORK_ITEMS_MESSAGE) -> "JobRecord":
        """Terminal record for a job that resolved no work items."""
        now = utcnow()
        return cls(
            job_id=job_id,
            status=JobStatus.FAILED,
            start_time=now,
            completed_time=now,
            error_message=error_message,
        )

    @property
    def completed_ordinals(self) -> set[int]:
        return {entry.ordinal for entry in self.results}

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def has_ordinal(self, ordinal: int) -> bool:
        return any(entry.ordinal == ordinal for entry in self.results)

    def apply(self, entry: ResultEntry) -> "JobRecord":
        """
        Return a copy of this record with ``entry`` folded in.

        Returns ``self`` unchanged when the ordinal was already folded, so
        callers can skip the write. Raises ValueError for an ordinal outside
        ``0..total-1``.
        """
        if entry.ordinal >= self.total:
            raise ValueError(
                f"ordinal {entry.ordinal} out of range for job {self.job_id} (total {self.total})"
            )
        if self.has_ordinal(entry.ordinal):
            return self

        results = [*self.results, entry]
        processed = len({r.ordinal for r in results})
        update: dict[str, Any] = {"results": results, "processed": processed}
        if processed == self.total and self.status != JobStatus.COMPLETED:
            update["status"] = JobStatus.COMPLETED
            update["completed_time"] = utcnow()
        return self.model_copy(update=update)
