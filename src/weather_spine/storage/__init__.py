"""Artifact storage for produced images."""

from weather_spine.storage.base import ArtifactStore, artifact_path
from weather_spine.storage.local import LocalStorage

__all__ = [
    "ArtifactStore",
    "LocalStorage",
    "artifact_path",
    "get_storage",
    "set_storage",
    "reset_storage",
]


_storage: ArtifactStore | None = None


def get_storage() -> ArtifactStore:
    """Get or create storage instance based on configuration."""
    global _storage
    if _storage is None:
        from weather_spine.config import get_settings

        settings = get_settings()

        if settings.storage_type == "s3":
            from weather_spine.storage.s3 import S3Storage

            _storage = S3Storage(
                bucket=settings.storage_s3_bucket,
                endpoint_url=settings.storage_s3_endpoint,
                region=settings.storage_s3_region,
                access_key=settings.storage_s3_access_key,
                secret_key=settings.storage_s3_secret_key,
            )
        else:
            _storage = LocalStorage(base_path=settings.storage_local_path)

    return _storage


def set_storage(storage: ArtifactStore) -> None:
    """Set the storage instance (useful for testing)."""
    global _storage
    _storage = storage


def reset_storage() -> None:
    """Reset storage instance (for testing)."""
    global _storage
    _storage = None
