"""UnitProcessor - produce one unit's artifact and fold it into its job."""

import structlog

from weather_spine.models import JobRecord, ResultEntry, UnitMessage
from weather_spine.status import JobStore, get_status_store
from weather_spine.storage import ArtifactStore, artifact_path, get_storage
from weather_spine.transform import Transformer, get_transformer

logger = structlog.get_logger()


class UnitProcessor:
    """
    Consumes unit messages from the units queue.

    Safe to run any number of times for the same message: the artifact key
    is derived from (job_id, ordinal) and is overwritten, and the fold
    ignores ordinals it has already seen.
    """

    def __init__(
        self,
        transformer: Transformer | None = None,
        storage: ArtifactStore | None = None,
        store: JobStore | None = None,
    ):
        self.transformer = transformer or get_transformer()
        self.storage = storage or get_storage()
        self.store = store or get_status_store()

    def process(self, message: UnitMessage) -> JobRecord:
        """
        Transform, persist, fold. Nothing is folded if an earlier step fails.

        Raises:
            UpstreamUnavailable: If the transform failed
            NotFound: If the job record is not visible yet
            ConcurrencyConflict: If the fold kept losing races
        """
        log = logger.bind(job_id=message.job_id, ordinal=message.ordinal, total=message.total)
        log.debug("unit_processing_started")

        artifact = self.transformer.transform(message.item)

        path = artifact_path(message.job_id, message.ordinal)
        self.storage.put(path, artifact.content, artifact.content_type)
        log.debug("artifact_stored", path=path, size=len(artifact.content))

        entry = ResultEntry(ordinal=message.ordinal, artifact_path=path, metadata=artifact.metadata)
        return self.store.fold(message.job_id, entry)
