"""Transform interface: work item in, artifact out."""

from dataclasses import dataclass, field
from typing import Any, Protocol

from weather_spine.models import WorkItem


@dataclass
class Artifact:
    """A produced artifact and the metadata recorded with its result."""

    content: bytes
    content_type: str = "image/jpeg"
    metadata: dict[str, Any] = field(default_factory=dict)


class Transformer(Protocol):
    """Derives one artifact from one work item. Holds no job state."""

    def transform(self, item: WorkItem) -> Artifact:
        """
        Raises:
            UpstreamUnavailable: If the artifact could not be produced
        """
        ...
