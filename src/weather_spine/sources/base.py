"""Item source interface."""

from typing import Protocol, runtime_checkable

from weather_spine.models import WorkItem


@runtime_checkable
class ItemSource(Protocol):
    """Supplies the work items of a job."""

    name: str

    def fetch(self, max_items: int) -> list[WorkItem]:
        """
        Return at most ``max_items`` work items (possibly fewer, possibly none).

        Raises:
            UpstreamUnavailable: If the source could not be reached or parsed
        """
        ...


class StaticItemSource:
    """Serves a fixed list of items. Used for tests and offline demos."""

    name = "static"

    def __init__(self, items: list[WorkItem] | None = None):
        self.items = list(items or [])

    def fetch(self, max_items: int) -> list[WorkItem]:
        return [dict(item) for item in self.items[:max_items]]
