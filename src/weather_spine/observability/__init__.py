"""Observability helpers."""

from weather_spine.observability.logging import configure_logging

__all__ = ["configure_logging"]
