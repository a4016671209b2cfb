"""PostgreSQL status store with version-column compare-and-swap."""

import structlog
from psycopg.types.json import Jsonb

from weather_spine.db import get_connection
from weather_spine.errors import AlreadyExists, ConcurrencyConflict, NotFound
from weather_spine.models import JobRecord
from weather_spine.status.base import JobStore

logger = structlog.get_logger()

_COLUMNS = """
    job_id, status, start_time, completed_time, total, processed,
    results, error_message, version
"""


def _row_to_record(row: dict) -> tuple[JobRecord, int]:
    data = dict(row)
    version = data.pop("version")
    return JobRecord.model_validate(data), version


def _results_json(record: JobRecord) -> Jsonb:
    return Jsonb([entry.model_dump(mode="json") for entry in record.results])


class PostgresJobStore(JobStore):
    """
    Job records in the ``jobs`` table.

    Writes are ``UPDATE ... WHERE version = expected`` so a writer that read
    a stale version updates zero rows and has to re-read.
    """

    name = "postgres"

    def create(self, record: JobRecord) -> JobRecord:
        with get_connection() as conn:
            result = conn.execute(
                """
                INSERT INTO jobs (
                    job_id, status, start_time, completed_time, total,
                    processed, results, error_message, version
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, 1)
                ON CONFLICT (job_id) DO NOTHING
                RETURNING job_id
                """,
                (
                    record.job_id,
                    record.status.value,
                    record.start_time,
                    record.completed_time,
                    record.total,
                    record.processed,
                    _results_json(record),
                    record.error_message,
                ),
            )
            inserted = result.fetchone() is not None
            conn.commit()

        if not inserted:
            raise AlreadyExists(f"Job already exists: {record.job_id}", job_id=record.job_id)

        logger.info(
            "job_created",
            job_id=record.job_id,
            status=record.status.value,
            total=record.total,
        )
        return record

    def _read(self, job_id: str) -> tuple[JobRecord, int]:
        with get_connection() as conn:
            result = conn.execute(
                f"SELECT {_COLUMNS} FROM jobs WHERE job_id = %s",
                (job_id,),
            )
            row = result.fetchone()

        if row is None:
            raise NotFound(f"Job not found: {job_id}", job_id=job_id)
        return _row_to_record(row)

    def _compare_and_swap(self, record: JobRecord, expected_version: int) -> int:
        with get_connection() as conn:
            result = conn.execute(
                """
                UPDATE jobs
                SET status = %s,
                    completed_time = %s,
                    processed = %s,
                    results = %s,
                    error_message = %s,
                    version = version + 1
                WHERE job_id = %s AND version = %s
                RETURNING version
                """,
                (
                    record.status.value,
                    record.completed_time,
                    record.processed,
                    _results_json(record),
                    record.error_message,
                    record.job_id,
                    expected_version,
                ),
            )
            row = result.fetchone()
            conn.commit()

        if row is None:
            raise ConcurrencyConflict(
                f"Version mismatch for job {record.job_id}: expected {expected_version}",
                job_id=record.job_id,
            )
        return row["version"]

    def list(self) -> list[JobRecord]:
        with get_connection() as conn:
            result = conn.execute(f"SELECT {_COLUMNS} FROM jobs")
            return [_row_to_record(row)[0] for row in result.fetchall()]
