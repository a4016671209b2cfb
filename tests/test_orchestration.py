"""Tests for orchestration layer."""

import threading
import time
from unittest import mock

import pytest
from celery.exceptions import Retry
from kombu.exceptions import OperationalError

from weather_spine.config import get_settings
from weather_spine.errors import (
    AlreadyExists,
    ConcurrencyConflict,
    DispatchError,
    NotFound,
    UpstreamUnavailable,
    is_retryable,
)
from weather_spine.intake import JobIntake
from weather_spine.models import JobStatus
from weather_spine.orchestration import (
    CeleryBackend,
    LocalBackend,
    MemoryDeadLetterStore,
    QueueBackend,
    get_backend,
)


class FlakyHandler:
    """Fails ``failures`` times, then succeeds."""

    def __init__(self, failures: int, error: Exception | None = None):
        self.failures = failures
        self.error = error or NotFound("record not visible yet")
        self.calls: list[dict] = []

    def __call__(self, payload):
        self.calls.append(payload)
        if len(self.calls) <= self.failures:
            raise self.error
        return "ok"


def local_backend(handler, dead_letters, max_redeliveries=3) -> LocalBackend:
    return LocalBackend(
        handlers={"q": handler},
        max_redeliveries=max_redeliveries,
        backoff_seconds=0,
        dead_letters=dead_letters,
    )


class TestLocalBackend:
    """Tests for LocalBackend."""

    def test_implements_protocol(self, dead_letters):
        assert isinstance(local_backend(FlakyHandler(0), dead_letters), QueueBackend)

    def test_synchronous_delivery(self, dead_letters):
        handler = FlakyHandler(0)
        backend = local_backend(handler, dead_letters)

        message_id = backend.publish("q", {"job_id": "job-1"})

        assert message_id
        assert handler.calls == [{"job_id": "job-1"}]

    def test_consumer_gets_a_copy(self, dead_letters):
        handler = FlakyHandler(0)
        backend = local_backend(handler, dead_letters)
        payload = {"job_id": "job-1", "item": {"a": 1}}

        backend.publish("q", payload)

        assert handler.calls[0] == payload
        assert handler.calls[0] is not payload

    def test_redelivers_until_success(self, dead_letters):
        handler = FlakyHandler(2)
        backend = local_backend(handler, dead_letters)

        backend.publish("q", {"job_id": "job-1"})

        assert len(handler.calls) == 3
        assert dead_letters.list() == []

    def test_dead_letters_after_max_redeliveries(self, dead_letters):
        handler = FlakyHandler(100)
        backend = local_backend(handler, dead_letters, max_redeliveries=3)

        backend.publish("q", {"job_id": "job-1"})

        assert len(handler.calls) == 4
        [letter] = dead_letters.list()
        assert letter.queue == "q"
        assert letter.job_id == "job-1"
        assert letter.attempts == 4
        assert "not visible" in letter.error

    def test_non_retryable_error_dead_letters_immediately(self, dead_letters):
        handler = FlakyHandler(100, error=AlreadyExists("duplicate"))
        backend = local_backend(handler, dead_letters)

        backend.publish("q", {"job_id": "job-1"})

        assert len(handler.calls) == 1
        assert dead_letters.list()[0].attempts == 1

    def test_unknown_queue(self, dead_letters):
        backend = local_backend(FlakyHandler(0), dead_letters)

        with pytest.raises(ValueError):
            backend.publish("other", {})

    def test_malformed_message_dead_lettered_without_retry(self, pipeline):
        backend = pipeline["backend"]

        backend.publish(get_settings().units_queue, {"job_id": "job-1", "ordinal": "x"})

        [letter] = pipeline["dead_letters"].list()
        assert letter.queue == get_settings().units_queue
        assert letter.attempts == 1
        assert pipeline["transformer"].calls == []

    def test_threaded_delivery_completes_job(self, pipeline):
        backend = pipeline["backend"]
        backend.start()

        accepted = JobIntake().start_job()
        backend.drain(timeout=10)

        record = pipeline["store"].get(accepted.job_id)
        assert record.status == JobStatus.COMPLETED
        assert record.processed == 3
        assert backend.health()["active_deliveries"] == 0

    def test_publish_after_stop_delivers_synchronously(self, dead_letters):
        handler = FlakyHandler(0)
        backend = local_backend(handler, dead_letters)
        backend.start()
        backend.stop()

        backend.publish("q", {"job_id": "job-1"})

        assert handler.calls == [{"job_id": "job-1"}]

    def test_in_flight_delivery_can_publish_while_stopping(self, dead_letters):
        release = threading.Event()
        follow_ups = []

        backend = LocalBackend(
            handlers={
                "first": lambda payload: (release.wait(5), backend.publish("second", payload)),
                "second": follow_ups.append,
            },
            max_redeliveries=0,
            backoff_seconds=0,
            dead_letters=dead_letters,
        )
        backend.start()
        backend.publish("first", {"job_id": "job-1"})

        stopper = threading.Thread(target=backend.stop)
        stopper.start()
        deadline = time.monotonic() + 5
        while backend.health()["message"] == "running" and time.monotonic() < deadline:
            time.sleep(0.01)
        release.set()
        stopper.join(timeout=5)

        assert not stopper.is_alive()
        assert follow_ups == [{"job_id": "job-1"}]
        assert dead_letters.list() == []

    def test_concurrent_publish_and_stop(self, dead_letters):
        handler = FlakyHandler(0)
        backend = local_backend(handler, dead_letters)
        backend.start()
        errors = []

        def publish_many():
            for i in range(50):
                try:
                    backend.publish("q", {"job_id": f"job-{i}"})
                except Exception as e:  # collected and asserted below
                    errors.append(e)

        publishers = [threading.Thread(target=publish_many) for _ in range(4)]
        for t in publishers:
            t.start()
        backend.stop()
        for t in publishers:
            t.join(timeout=10)
        backend.drain(timeout=10)

        assert errors == []
        assert len(handler.calls) == 200

    def test_health(self, dead_letters):
        backend = local_backend(FlakyHandler(0), dead_letters)

        assert backend.health()["message"] == "synchronous"
        backend.start()
        try:
            assert backend.health()["message"] == "running"
        finally:
            backend.stop()


class TestMemoryDeadLetterStore:
    def test_list_most_recent_first_with_limit(self):
        store = MemoryDeadLetterStore()
        for i in range(3):
            store.record("q", {"job_id": f"job-{i}"}, "boom", attempts=1)

        letters = store.list(limit=2)

        assert [d.job_id for d in letters] == ["job-2", "job-1"]


class TestCeleryBackend:
    """Tests for CeleryBackend with the broker mocked out."""

    def test_publish_routes_to_queue_task(self):
        from weather_spine.tasks import process_unit_task, resolve_job_task

        settings = get_settings()
        backend = CeleryBackend()

        with mock.patch.object(resolve_job_task, "apply_async") as resolve, mock.patch.object(
            process_unit_task, "apply_async"
        ) as process:
            resolve.return_value.id = "task-1"
            task_id = backend.publish(settings.intake_queue, {"job_id": "job-1"})
            backend.publish(settings.units_queue, {"job_id": "job-1", "ordinal": 0})

        assert task_id == "task-1"
        resolve.assert_called_once_with(args=[{"job_id": "job-1"}], queue=settings.intake_queue)
        process.assert_called_once_with(
            args=[{"job_id": "job-1", "ordinal": 0}], queue=settings.units_queue
        )

    def test_broker_failure_becomes_dispatch_error(self):
        from weather_spine.tasks import resolve_job_task

        backend = CeleryBackend()

        with mock.patch.object(
            resolve_job_task, "apply_async", side_effect=OperationalError("broker down")
        ):
            with pytest.raises(DispatchError):
                backend.publish(get_settings().intake_queue, {"job_id": "job-1"})

    def test_unknown_queue(self):
        with pytest.raises(ValueError):
            CeleryBackend().publish("other", {})

    def test_get_backend_from_settings(self, monkeypatch):
        monkeypatch.setenv("BACKEND_TYPE", "celery")

        assert isinstance(get_backend(), CeleryBackend)


class TestCeleryTasks:
    """Tests for task configuration and the dead letter hook."""

    def test_routes_and_delivery_options(self):
        from weather_spine.celery_app import PROCESS_UNIT_TASK, RESOLVE_JOB_TASK, celery_app
        from weather_spine.tasks import process_unit_task

        settings = get_settings()
        routes = celery_app.conf.task_routes
        assert routes[RESOLVE_JOB_TASK]["queue"] == settings.intake_queue
        assert routes[PROCESS_UNIT_TASK]["queue"] == settings.units_queue
        assert celery_app.conf.task_acks_late is True
        assert celery_app.conf.task_reject_on_worker_lost is True

        assert process_unit_task.max_retries == settings.queue_max_redeliveries
        assert process_unit_task.retry_backoff_seconds == settings.queue_retry_backoff_seconds

    @pytest.mark.parametrize(
        "error",
        [
            AlreadyExists("duplicate"),
            ValueError("bad total"),
            UpstreamUnavailable("feed gone", retryable=False),
        ],
    )
    def test_non_retryable_errors_are_not_redelivered(self, error):
        from weather_spine.tasks import process_unit_task

        with mock.patch.object(process_unit_task, "retry") as retry:
            assert process_unit_task.redelivery(error) is error

        retry.assert_not_called()

    @pytest.mark.parametrize(
        "error",
        [NotFound("not visible yet"), ConcurrencyConflict("busy"), RuntimeError("boom")],
    )
    def test_retryable_errors_are_redelivered(self, error):
        from weather_spine.tasks import process_unit_task

        with mock.patch.object(process_unit_task, "retry", return_value=Retry("again")) as retry:
            result = process_unit_task.redelivery(error)

        assert isinstance(result, Retry)
        retry.assert_called_once_with(exc=error, countdown=0, throw=False)

    def test_redelivery_agrees_with_local_backend(self):
        from weather_spine.tasks import resolve_job_task

        errors = [AlreadyExists("a"), ValueError("b"), NotFound("c"), DispatchError("d")]
        with mock.patch.object(resolve_job_task, "retry", return_value=Retry("again")):
            redelivered = [resolve_job_task.redelivery(e) is not e for e in errors]

        assert redelivered == [is_retryable(e) for e in errors]

    def test_task_raises_handler_error_when_not_retryable(self):
        from weather_spine.tasks import process_unit_task

        with mock.patch(
            "weather_spine.worker.handle_unit", side_effect=AlreadyExists("duplicate")
        ), mock.patch.object(process_unit_task, "retry") as retry:
            with pytest.raises(AlreadyExists):
                process_unit_task({"job_id": "job-1", "ordinal": 0})

        retry.assert_not_called()

    def test_task_schedules_retry_for_transient_error(self):
        from weather_spine.tasks import process_unit_task

        with mock.patch(
            "weather_spine.worker.handle_unit", side_effect=NotFound("not visible yet")
        ), mock.patch.object(process_unit_task, "retry", return_value=Retry("again")):
            with pytest.raises(Retry):
                process_unit_task({"job_id": "job-1", "ordinal": 0})

    def test_on_failure_records_dead_letter(self, dead_letters):
        from weather_spine.tasks import process_unit_task

        payload = {"job_id": "job-1", "ordinal": 2, "total": 3, "item": {}}

        process_unit_task.on_failure(NotFound("gone"), "task-1", (payload,), {}, None)

        [letter] = dead_letters.list()
        assert letter.queue == get_settings().units_queue
        assert letter.job_id == "job-1"
        assert letter.payload == payload
