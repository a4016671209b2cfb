"""Per-unit transformation: station data to annotated image."""

from weather_spine.transform.annotate import WeatherImageAnnotator
from weather_spine.transform.base import Artifact, Transformer

__all__ = ["Artifact", "Transformer", "WeatherImageAnnotator", "get_transformer", "set_transformer"]


_transformer: Transformer | None = None


def get_transformer() -> Transformer:
    """Get or create the configured transformer."""
    global _transformer
    if _transformer is None:
        from weather_spine.config import get_settings

        settings = get_settings()
        _transformer = WeatherImageAnnotator(
            image_url=settings.image_source_url,
            timeout=settings.image_source_timeout,
            width=settings.image_width,
            height=settings.image_height,
        )
    return _transformer


def set_transformer(transformer: Transformer | None) -> None:
    """Set (or with None, reset) the transformer instance."""
    global _transformer
    _transformer = transformer
