"""Celery application configuration."""

from celery import Celery
from celery.signals import setup_logging

from weather_spine.config import get_settings

settings = get_settings()

RESOLVE_JOB_TASK = "weather_spine.tasks.resolve_job"
PROCESS_UNIT_TASK = "weather_spine.tasks.process_unit"

# Create Celery app
celery_app = Celery(
    "weather_spine",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["weather_spine.tasks"],
)

# Configure Celery
celery_app.conf.update(
    # Delivery: ack after the handler returns so a crashed worker's
    # message goes back on the queue
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=settings.celery_worker_prefetch_multiplier,
    # Serialization
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # Time settings
    timezone="UTC",
    enable_utc=True,
    # Results are never read back; progress lives in the status store
    task_ignore_result=settings.celery_result_backend is None,
    task_track_started=True,
    # Queues
    task_default_queue=settings.intake_queue,
    task_routes={
        RESOLVE_JOB_TASK: {"queue": settings.intake_queue},
        PROCESS_UNIT_TASK: {"queue": settings.units_queue},
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    from weather_spine.observability.logging import configure_logging

    configure_logging()
