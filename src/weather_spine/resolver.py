"""WorkItemResolver - turn a job request into a job record and its units."""

import structlog

from weather_spine.dispatcher import WorkDispatcher
from weather_spine.models import JobRecord, JobRequestMessage
from weather_spine.sources import ItemSource, get_item_source
from weather_spine.status import JobStore, get_status_store

logger = structlog.get_logger()


class WorkItemResolver:
    """
    Consumes job requests from the intake queue.

    The job record is always created before the first unit is published,
    so a processor can never fold into a job that does not exist yet.
    """

    def __init__(
        self,
        item_source: ItemSource | None = None,
        store: JobStore | None = None,
        dispatcher: WorkDispatcher | None = None,
    ):
        self.item_source = item_source or get_item_source()
        self.store = store or get_status_store()
        self.dispatcher = dispatcher or WorkDispatcher()

    def resolve(self, message: JobRequestMessage) -> JobRecord:
        """
        Fetch work items, create the record, dispatch the units.

        Raises:
            UpstreamUnavailable: If the item source failed (no record written)
            AlreadyExists: If the job was already resolved
            DispatchError: If publishing units failed part way
        """
        log = logger.bind(job_id=message.job_id)

        items = self.item_source.fetch(message.max_items)
        log.info("work_items_resolved", count=len(items), max_items=message.max_items)

        if not items:
            record = self.store.create(JobRecord.failed(message.job_id))
            log.warning("job_failed_no_items")
            return record

        record = self.store.create(JobRecord.processing(message.job_id, total=len(items)))
        self.dispatcher.dispatch(message.job_id, record.total, items)
        return record
