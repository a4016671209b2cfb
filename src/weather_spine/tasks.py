"""Celery tasks consuming the intake and units queues."""

import structlog
from celery import Task
from celery.utils.time import get_exponential_backoff_interval

from weather_spine.celery_app import PROCESS_UNIT_TASK, RESOLVE_JOB_TASK, celery_app
from weather_spine.config import get_settings
from weather_spine.errors import is_retryable

logger = structlog.get_logger()

settings = get_settings()


class DeadLetterTask(Task):
    """Task base that redelivers transient failures and dead-letters the rest."""

    source_queue: str = ""
    retry_backoff_seconds: int = 0
    retry_backoff_max_seconds: int = 0

    def redelivery(self, exc: Exception) -> Exception:
        """
        Exception to raise for a failed delivery.

        Retryable failures come back as a scheduled Celery retry with
        jittered exponential backoff; once ``max_retries`` is spent, or when
        ``is_retryable`` says no, the original error is returned and the
        task fails into ``on_failure``.
        """
        if not is_retryable(exc):
            return exc
        countdown = get_exponential_backoff_interval(
            factor=self.retry_backoff_seconds,
            retries=self.request.retries,
            maximum=self.retry_backoff_max_seconds,
            full_jitter=True,
        )
        return self.retry(exc=exc, countdown=countdown, throw=False)

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        from weather_spine.orchestration.dlq import get_dead_letter_store

        payload = args[0] if args else kwargs.get("payload", {})
        get_dead_letter_store().record(
            queue=self.source_queue,
            payload=payload,
            error=str(exc),
            attempts=self.request.retries + 1,
        )


_delivery_options = dict(
    bind=True,
    base=DeadLetterTask,
    acks_late=True,
    reject_on_worker_lost=True,
    max_retries=settings.queue_max_redeliveries,
    retry_backoff_seconds=settings.queue_retry_backoff_seconds,
    retry_backoff_max_seconds=settings.queue_retry_backoff_max_seconds,
)


@celery_app.task(name=RESOLVE_JOB_TASK, source_queue=settings.intake_queue, **_delivery_options)
def resolve_job_task(self, payload: dict) -> dict:
    """Resolve a job's work items, create its record and fan out its units."""
    from weather_spine.worker import handle_job_request

    log = logger.bind(job_id=payload.get("job_id"), task_id=self.request.id)
    log.info("resolve_task_started", attempt=self.request.retries + 1)

    try:
        record = handle_job_request(payload)
    except Exception as e:
        log.warning("resolve_task_failed", error=str(e), retryable=is_retryable(e))
        raise self.redelivery(e)

    log.info("resolve_task_completed", status=record.status.value, total=record.total)
    return {"job_id": record.job_id, "status": record.status.value, "total": record.total}


@celery_app.task(name=PROCESS_UNIT_TASK, source_queue=settings.units_queue, **_delivery_options)
def process_unit_task(self, payload: dict) -> dict:
    """Transform one work item and fold its result into the job record."""
    from weather_spine.worker import handle_unit

    log = logger.bind(
        job_id=payload.get("job_id"),
        ordinal=payload.get("ordinal"),
        task_id=self.request.id,
    )
    log.info("unit_task_started", attempt=self.request.retries + 1)

    try:
        record = handle_unit(payload)
    except Exception as e:
        log.warning("unit_task_failed", error=str(e), retryable=is_retryable(e))
        raise self.redelivery(e)

    log.info("unit_task_completed", processed=record.processed, total=record.total)
    return {"job_id": record.job_id, "processed": record.processed, "total": record.total}
