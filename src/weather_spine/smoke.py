"""SmokeTest - push one station through transform and storage, no queues."""

import uuid
from typing import Any

import structlog
from pydantic import BaseModel

from weather_spine.errors import UpstreamUnavailable
from weather_spine.sources import ItemSource, get_item_source
from weather_spine.storage import ArtifactStore, artifact_path, get_storage
from weather_spine.transform import Transformer, get_transformer

logger = structlog.get_logger()

SMOKE_JOB_PREFIX = "test-"


class SmokeResult(BaseModel):
    job_id: str
    artifact_path: str
    size_bytes: int
    station: dict[str, Any]


class SmokeTest:
    """
    Operator check that the item source, transform and object store work.

    Writes a single artifact under a ``test-`` job id. No job record is
    created and nothing is published, so the result never shows up in the
    job history.
    """

    def __init__(
        self,
        item_source: ItemSource | None = None,
        transformer: Transformer | None = None,
        storage: ArtifactStore | None = None,
    ):
        self.item_source = item_source or get_item_source()
        self.transformer = transformer or get_transformer()
        self.storage = storage or get_storage()

    def run(self) -> SmokeResult:
        """
        Raises:
            UpstreamUnavailable: If the source returned no station or a
                collaborator is down
        """
        items = self.item_source.fetch(1)
        if not items:
            raise UpstreamUnavailable("No weather stations available", source=self.item_source.name)

        item = items[0]
        job_id = f"{SMOKE_JOB_PREFIX}{uuid.uuid4()}"
        log = logger.bind(job_id=job_id, station=item.get("station_name"))

        artifact = self.transformer.transform(item)
        path = artifact_path(job_id, 0)
        self.storage.put(path, artifact.content, artifact.content_type)

        log.info("smoke_test_succeeded", path=path, size=len(artifact.content))
        return SmokeResult(
            job_id=job_id,
            artifact_path=path,
            size_bytes=len(artifact.content),
            station=item,
        )
