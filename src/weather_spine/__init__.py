"""Weather Spine - fan-out/fan-in job pipeline for annotated weather images."""

__version__ = "0.1.0"
