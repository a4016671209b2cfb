"""CeleryBackend - Distributed queue backend."""

from typing import Any

import structlog
from kombu.exceptions import OperationalError

from weather_spine.config import get_settings
from weather_spine.errors import DispatchError

logger = structlog.get_logger()


class CeleryBackend:
    """
    Celery-based backend for distributed job processing.

    Each queue maps to one Celery task; redelivery and dead-lettering
    happen on the worker side (see ``weather_spine.tasks``).
    """

    name = "celery"

    def __init__(self):
        self._celery_app = None

    def _get_celery_app(self):
        """Get or create Celery app."""
        if self._celery_app is None:
            from weather_spine.celery_app import celery_app

            self._celery_app = celery_app
        return self._celery_app

    def _task_for(self, queue: str):
        from weather_spine.tasks import process_unit_task, resolve_job_task

        settings = get_settings()
        tasks = {
            settings.intake_queue: resolve_job_task,
            settings.units_queue: process_unit_task,
        }
        if queue not in tasks:
            raise ValueError(f"No task registered for queue: {queue}")
        return tasks[queue]

    def start(self) -> None:
        """
        Start the backend.

        For Celery, this is a no-op as workers are started separately.
        """
        logger.info("celery_backend_initialized")

    def stop(self) -> None:
        """Stop the backend."""
        logger.info("celery_backend_stopped")

    def publish(self, queue: str, payload: dict[str, Any]) -> str | None:
        """Send a message to the task consuming ``queue``."""
        task = self._task_for(queue)
        try:
            result = task.apply_async(args=[payload], queue=queue)
        except (OperationalError, OSError) as e:
            logger.error("celery_publish_failed", queue=queue, job_id=payload.get("job_id"), error=str(e))
            raise DispatchError(f"Queue {queue} unavailable: {e}", queue=queue, cause=e)

        logger.debug(
            "message_published_to_celery",
            queue=queue,
            job_id=payload.get("job_id"),
            task_id=result.id,
        )
        return result.id

    def health(self) -> dict:
        """Check Celery backend health."""
        try:
            celery_app = self._get_celery_app()

            # Ping workers
            inspect = celery_app.control.inspect(timeout=1.0)
            stats = inspect.stats()

            if stats:
                return {
                    "healthy": True,
                    "message": f"{len(stats)} workers available",
                    "workers": list(stats.keys()),
                }
            return {
                "healthy": False,
                "message": "No workers available",
                "workers": [],
            }
        except Exception as e:
            return {
                "healthy": False,
                "message": f"Health check failed: {str(e)}",
                "workers": [],
            }
