"""Local filesystem artifact store."""

import os
import tempfile
from pathlib import Path

import structlog

from weather_spine.errors import NotFound
from weather_spine.storage.base import ArtifactStore

logger = structlog.get_logger()


class LocalStorage(ArtifactStore):
    """
    Stores artifacts under a base directory, one file per key.

    Writes go to a temporary file that is renamed into place, so a reader
    never sees a half-written artifact and a redelivered unit simply
    replaces the previous file.
    """

    name = "local"

    def __init__(self, base_path: str | Path = "./data"):
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info("local_storage_initialized", base_path=str(self.base_path))

    def _resolve_path(self, path: str) -> Path:
        """Resolve a storage key to an absolute filesystem path."""
        clean_path = Path(path).as_posix().lstrip("/")
        full_path = self.base_path / clean_path

        # Keys must stay inside base_path
        try:
            full_path.resolve().relative_to(self.base_path)
        except ValueError:
            raise ValueError(f"Invalid path: {path} (outside base directory)")

        return full_path

    def put(self, path: str, content: bytes, content_type: str | None = None) -> None:
        full_path = self._resolve_path(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=full_path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(content)
            os.replace(tmp_name, full_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info("artifact_written", path=path, size=len(content), content_type=content_type)

    def get(self, path: str) -> bytes:
        full_path = self._resolve_path(path)
        if not full_path.is_file():
            raise NotFound(f"Artifact not found: {path}", path=path)
        return full_path.read_bytes()
