"""WorkDispatcher - fan a job's work items out onto the units queue."""

import structlog

from weather_spine.config import get_settings
from weather_spine.errors import DispatchError
from weather_spine.models import UnitMessage, WorkItem
from weather_spine.orchestration import QueueBackend, get_backend

logger = structlog.get_logger()


class WorkDispatcher:
    """
    Publishes one unit message per work item.

    Messages are published in list order, each tagged with its ordinal and
    the job's total; consumers may still see them in any order.
    """

    def __init__(self, backend: QueueBackend | None = None, queue: str | None = None):
        self._backend = backend
        self.queue = queue or get_settings().units_queue

    @property
    def backend(self) -> QueueBackend:
        return self._backend or get_backend()

    def dispatch(self, job_id: str, total: int, items: list[WorkItem]) -> int:
        """
        Publish ``items`` as units of job ``job_id``. Returns the count.

        Raises:
            ValueError: If ``total`` does not match the number of items
            DispatchError: If a publish fails; ``published`` says how many
                messages went out before it
        """
        if total != len(items):
            raise ValueError(f"total {total} does not match {len(items)} work items")

        backend = self.backend
        published = 0
        for ordinal, item in enumerate(items):
            message = UnitMessage(job_id=job_id, item=item, ordinal=ordinal, total=total)
            try:
                backend.publish(self.queue, message.model_dump(mode="json"))
            except DispatchError as e:
                logger.error(
                    "unit_dispatch_failed",
                    job_id=job_id,
                    published=published,
                    total=total,
                    error=str(e),
                )
                raise DispatchError(
                    f"Dispatched {published} of {total} units for job {job_id}: {e.message}",
                    published=published,
                    job_id=job_id,
                    cause=e,
                )
            published += 1

        logger.info("units_dispatched", job_id=job_id, total=total, queue=self.queue)
        return published
