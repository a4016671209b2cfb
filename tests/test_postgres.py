"""Tests for the PostgreSQL-backed stores.

Run only when WEATHER_SPINE_TEST_DATABASE_URL points at a disposable database.
"""

import os
import threading

import pytest

from weather_spine.errors import AlreadyExists, NotFound
from weather_spine.models import JobRecord, JobStatus, ResultEntry

DATABASE_URL = os.environ.get("WEATHER_SPINE_TEST_DATABASE_URL")

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(not DATABASE_URL, reason="WEATHER_SPINE_TEST_DATABASE_URL not set"),
]


@pytest.fixture
def db(monkeypatch):
    """Fresh schema on the test database."""
    from weather_spine.config import reset_settings
    from weather_spine.db import close_pool, get_connection, init_db

    monkeypatch.setenv("DATABASE_URL", DATABASE_URL)
    reset_settings()
    close_pool()

    with get_connection() as conn:
        conn.execute("DROP TABLE IF EXISTS jobs, dead_letters, _migrations CASCADE")
        conn.commit()
    init_db()

    yield

    close_pool()


def entry(ordinal: int) -> ResultEntry:
    return ResultEntry(ordinal=ordinal, artifact_path=f"job-1/station-{ordinal:03d}.jpg",
                       metadata={"temperature": 10.5})


class TestPostgresJobStore:
    """Tests for PostgresJobStore."""

    @pytest.fixture
    def pg_store(self, db):
        from weather_spine.status.postgres import PostgresJobStore

        return PostgresJobStore(max_attempts=200, retry_delay=0.001)

    def test_create_get_round_trip(self, pg_store):
        pg_store.create(JobRecord.processing("job-1", total=2))

        record = pg_store.get("job-1")

        assert record.status == JobStatus.PROCESSING
        assert record.total == 2
        assert record.results == []

    def test_duplicate_create(self, pg_store):
        pg_store.create(JobRecord.processing("job-1", total=2))

        with pytest.raises(AlreadyExists):
            pg_store.create(JobRecord.processing("job-1", total=2))

    def test_get_unknown(self, pg_store):
        with pytest.raises(NotFound):
            pg_store.get("ghost")

    def test_fold_to_completion(self, pg_store):
        pg_store.create(JobRecord.processing("job-1", total=2))

        pg_store.fold("job-1", entry(1))
        pg_store.fold("job-1", entry(1))
        record = pg_store.fold("job-1", entry(0))

        assert record.status == JobStatus.COMPLETED
        assert record.processed == 2
        stored = pg_store.get("job-1")
        assert stored.status == JobStatus.COMPLETED
        assert stored.results[0].metadata == {"temperature": 10.5}

    def test_concurrent_folds(self, pg_store):
        pg_store.create(JobRecord.processing("job-1", total=20))
        errors = []

        def fold(i):
            try:
                pg_store.fold("job-1", entry(i))
            except Exception as e:  # collected and asserted below
                errors.append(e)

        threads = [threading.Thread(target=fold, args=(i,)) for i in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert errors == []
        record = pg_store.get("job-1")
        assert record.processed == 20
        assert record.status == JobStatus.COMPLETED

    def test_list(self, pg_store):
        pg_store.create(JobRecord.processing("a", total=1))
        pg_store.create(JobRecord.failed("b"))

        assert {r.job_id for r in pg_store.list()} == {"a", "b"}


class TestPostgresDeadLetterStore:
    def test_record_and_list(self, db):
        from weather_spine.orchestration import PostgresDeadLetterStore

        dlq = PostgresDeadLetterStore()
        dlq.record("weather-image-units", {"job_id": "job-1", "ordinal": 3}, "boom", 6)

        [letter] = dlq.list()

        assert letter.job_id == "job-1"
        assert letter.payload == {"job_id": "job-1", "ordinal": 3}
        assert letter.attempts == 6
