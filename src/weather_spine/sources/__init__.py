"""Item sources: where a job's work items come from."""

from weather_spine.sources.base import ItemSource, StaticItemSource
from weather_spine.sources.buienradar import BuienradarSource

__all__ = ["ItemSource", "StaticItemSource", "BuienradarSource", "get_item_source", "set_item_source"]


_source: ItemSource | None = None


def get_item_source() -> ItemSource:
    """Get or create the configured item source."""
    global _source
    if _source is None:
        from weather_spine.config import get_settings

        settings = get_settings()
        _source = BuienradarSource(
            url=settings.item_source_url,
            timeout=settings.item_source_timeout,
        )
    return _source


def set_item_source(source: ItemSource | None) -> None:
    """Set (or with None, reset) the item source instance."""
    global _source
    _source = source
