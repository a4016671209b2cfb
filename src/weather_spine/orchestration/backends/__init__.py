"""Backend implementations."""

from weather_spine.orchestration.backends.protocol import QueueBackend
from weather_spine.orchestration.backends.local import LocalBackend
from weather_spine.orchestration.backends.celery_backend import CeleryBackend

__all__ = ["QueueBackend", "LocalBackend", "CeleryBackend"]
