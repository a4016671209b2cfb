"""Base artifact store interface."""

from abc import ABC, abstractmethod


def artifact_path(job_id: str, ordinal: int) -> str:
    """Deterministic key for a unit's artifact; redelivery overwrites it."""
    return f"{job_id}/station-{ordinal:03d}.jpg"


class ArtifactStore(ABC):
    """Abstract base class for artifact storage backends."""

    name = "base"

    @abstractmethod
    def put(self, path: str, content: bytes, content_type: str | None = None) -> None:
        """
        Write content at ``path``, replacing anything already there.

        Args:
            path: Storage key (e.g., "<job_id>/station-007.jpg")
            content: Artifact bytes
            content_type: Optional MIME type
        """
        ...

    @abstractmethod
    def get(self, path: str) -> bytes:
        """
        Read an artifact.

        Raises:
            NotFound: If nothing is stored at path
        """
        ...
