"""LocalBackend - in-process queue backend."""

import copy
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable

import structlog

from weather_spine.config import get_settings
from weather_spine.errors import is_retryable
from weather_spine.orchestration.dlq import DeadLetterStore, get_dead_letter_store

logger = structlog.get_logger()

Handler = Callable[[dict[str, Any]], Any]


class LocalBackend:
    """
    In-process backend for development and tests.

    Without ``start()`` every publish is delivered synchronously before it
    returns, which makes whole jobs deterministic in tests. Once started,
    deliveries run on a thread pool in whatever order the threads pick
    them up. Either way a failed delivery is retried up to
    ``max_redeliveries`` times, then dead-lettered.
    """

    name = "local"

    def __init__(
        self,
        handlers: dict[str, Handler] | None = None,
        max_redeliveries: int | None = None,
        backoff_seconds: float | None = None,
        backoff_max_seconds: float | None = None,
        max_concurrent: int | None = None,
        dead_letters: DeadLetterStore | None = None,
    ):
        settings = get_settings()
        self.max_redeliveries = (
            settings.queue_max_redeliveries if max_redeliveries is None else max_redeliveries
        )
        self.backoff_seconds = (
            settings.queue_retry_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self.backoff_max_seconds = (
            settings.queue_retry_backoff_max_seconds
            if backoff_max_seconds is None
            else backoff_max_seconds
        )
        self.max_concurrent = max_concurrent or settings.worker_max_concurrent

        self._handlers = handlers
        self._dead_letters = dead_letters

        self._running = False
        self._executor: ThreadPoolExecutor | None = None
        self._active_futures: dict[str, Future] = {}
        self._lock = threading.Lock()

    def _get_handlers(self) -> dict[str, Handler]:
        """Get the queue -> handler mapping."""
        if self._handlers is None:
            from weather_spine.worker import handle_job_request, handle_unit

            settings = get_settings()
            self._handlers = {
                settings.intake_queue: handle_job_request,
                settings.units_queue: handle_unit,
            }
        return self._handlers

    def _get_dead_letters(self) -> DeadLetterStore:
        return self._dead_letters or get_dead_letter_store()

    def start(self) -> None:
        """Switch to background delivery on a thread pool."""
        with self._lock:
            if self._running:
                logger.warning("backend_already_running")
                return
            self._running = True
            self._executor = ThreadPoolExecutor(max_workers=self.max_concurrent)

        logger.info("backend_started", backend=self.name, max_concurrent=self.max_concurrent)

    def stop(self) -> None:
        """
        Stop the backend gracefully, draining in-flight deliveries.

        Anything published once stopping has begun, including by a delivery
        still in flight, is delivered synchronously.
        """
        with self._lock:
            if not self._running:
                return
            self._running = False
            executor, self._executor = self._executor, None

        logger.info("backend_stopping")
        executor.shutdown(wait=True, cancel_futures=False)

        self._cleanup_completed_futures()
        logger.info("backend_stopped")

    def drain(self, timeout: float | None = None) -> None:
        """Block until every delivery published so far has finished."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._lock:
                pending = [f for f in self._active_futures.values() if not f.done()]
            if not pending:
                break
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                raise TimeoutError(f"{len(pending)} deliveries still in flight")
            wait(pending, timeout=remaining)
        self._cleanup_completed_futures()

    def publish(self, queue: str, payload: dict[str, Any]) -> str | None:
        """
        Publish a message.

        In synchronous mode (not started), delivers immediately.
        In async mode (started), queues for background delivery.
        """
        handlers = self._get_handlers()
        if queue not in handlers:
            raise ValueError(f"No handler registered for queue: {queue}")

        message_id = str(uuid.uuid4())
        # Consumers get their own copy, as they would off a real queue.
        message = copy.deepcopy(payload)

        self._cleanup_completed_futures()
        with self._lock:
            queued = self._running
            if queued:
                future = self._executor.submit(self._deliver, queue, message, message_id)
                self._active_futures[message_id] = future

        if queued:
            logger.debug("message_queued", queue=queue, message_id=message_id)
        else:
            self._deliver(queue, message, message_id)

        return message_id

    def _deliver(self, queue: str, payload: dict[str, Any], message_id: str) -> None:
        """Hand a message to its handler, redelivering on failure."""
        handler = self._get_handlers()[queue]
        log = logger.bind(queue=queue, message_id=message_id, job_id=payload.get("job_id"))

        attempt = 0
        while True:
            attempt += 1
            try:
                handler(payload)
                return
            except Exception as e:
                if not is_retryable(e):
                    log.error("delivery_rejected", attempt=attempt, error=str(e))
                    self._get_dead_letters().record(queue, payload, str(e), attempt)
                    return
                if attempt > self.max_redeliveries:
                    log.error("delivery_attempts_exhausted", attempt=attempt, error=str(e))
                    self._get_dead_letters().record(queue, payload, str(e), attempt)
                    return

                delay = self._backoff_delay(attempt)
                log.warning("delivery_failed_redelivering", attempt=attempt, delay=delay, error=str(e))
                if delay > 0:
                    time.sleep(delay)

    def _backoff_delay(self, attempt: int) -> float:
        if self.backoff_seconds <= 0:
            return 0.0
        return min(self.backoff_seconds * (2 ** (attempt - 1)), self.backoff_max_seconds)

    def _cleanup_completed_futures(self) -> None:
        """Remove completed futures from tracking."""
        with self._lock:
            completed = [mid for mid, future in self._active_futures.items() if future.done()]
            for message_id in completed:
                future = self._active_futures.pop(message_id)
                try:
                    future.result()
                except Exception as e:
                    logger.error("delivery_future_error", message_id=message_id, error=str(e))

    def health(self) -> dict:
        """Check backend health."""
        with self._lock:
            active_count = sum(1 for f in self._active_futures.values() if not f.done())
            running = self._running
        return {
            "healthy": True,
            "message": "running" if running else "synchronous",
            "active_deliveries": active_count,
            "max_concurrent": self.max_concurrent,
        }
