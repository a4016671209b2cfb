"""JobIntake - accept a job request and hand it off without waiting."""

import structlog

from weather_spine.config import get_settings
from weather_spine.models import JobAccepted, JobRequestMessage, new_job_id
from weather_spine.orchestration import QueueBackend, get_backend

logger = structlog.get_logger()


class JobIntake:
    """
    Entry point for new jobs.

    In ``deferred`` mode the request is published on the intake queue and
    resolved by a worker. In ``inline`` mode the resolver runs in the
    caller's thread before returning; units are still dispatched through
    the units queue.
    """

    def __init__(
        self,
        backend: QueueBackend | None = None,
        mode: str | None = None,
        queue: str | None = None,
    ):
        settings = get_settings()
        self._backend = backend
        self.mode = mode or settings.intake_mode
        self.queue = queue or settings.intake_queue

    @property
    def backend(self) -> QueueBackend:
        return self._backend or get_backend()

    def start_job(self, max_items: int | None = None) -> JobAccepted:
        """
        Allocate a job id and request its resolution.

        No job record exists when this returns in deferred mode; callers
        polling straight away may see NotFound until the resolver runs.

        Raises:
            DispatchError: If the intake queue is unavailable
        """
        if max_items is None:
            max_items = get_settings().default_max_items

        message = JobRequestMessage(job_id=new_job_id(), max_items=max_items)

        if self.mode == "inline":
            from weather_spine.dispatcher import WorkDispatcher
            from weather_spine.resolver import WorkItemResolver

            WorkItemResolver(dispatcher=WorkDispatcher(backend=self._backend)).resolve(message)
        else:
            self.backend.publish(self.queue, message.model_dump(mode="json"))

        logger.info(
            "job_accepted",
            job_id=message.job_id,
            max_items=max_items,
            mode=self.mode,
        )
        return JobAccepted(job_id=message.job_id, created_at=message.requested_at)
