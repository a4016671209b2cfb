"""Orchestration components: queue backends and the dead letter store."""

from weather_spine.orchestration.backends.protocol import QueueBackend
from weather_spine.orchestration.backends.local import LocalBackend
from weather_spine.orchestration.backends.celery_backend import CeleryBackend
from weather_spine.orchestration.dlq import (
    DeadLetter,
    DeadLetterStore,
    MemoryDeadLetterStore,
    PostgresDeadLetterStore,
    get_dead_letter_store,
    set_dead_letter_store,
)

_backend_instance: QueueBackend | None = None


def get_backend() -> QueueBackend:
    """Get the configured backend instance."""
    global _backend_instance

    if _backend_instance is None:
        from weather_spine.config import get_settings

        settings = get_settings()

        if settings.backend_type == "celery":
            _backend_instance = CeleryBackend()
        else:
            _backend_instance = LocalBackend()

    return _backend_instance


def set_backend(backend: QueueBackend | None) -> None:
    """Set (or with None, reset) the backend instance (useful for testing)."""
    global _backend_instance
    _backend_instance = backend


__all__ = [
    "QueueBackend",
    "LocalBackend",
    "CeleryBackend",
    "DeadLetter",
    "DeadLetterStore",
    "MemoryDeadLetterStore",
    "PostgresDeadLetterStore",
    "get_backend",
    "set_backend",
    "get_dead_letter_store",
    "set_dead_letter_store",
]
