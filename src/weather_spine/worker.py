"""Queue-agnostic message handlers, shared by every backend."""

from typing import Any

from structlog.contextvars import bound_contextvars

from weather_spine.models import JobRecord, JobRequestMessage, UnitMessage
from weather_spine.processor import UnitProcessor
from weather_spine.resolver import WorkItemResolver


def handle_job_request(payload: dict[str, Any]) -> JobRecord:
    """Intake-queue handler. Malformed payloads raise ValidationError."""
    message = JobRequestMessage.model_validate(payload)
    with bound_contextvars(job_id=message.job_id, stage="resolve"):
        return WorkItemResolver().resolve(message)


def handle_unit(payload: dict[str, Any]) -> JobRecord:
    """Units-queue handler. Malformed payloads raise ValidationError."""
    message = UnitMessage.model_validate(payload)
    with bound_contextvars(job_id=message.job_id, ordinal=message.ordinal, stage="process"):
        return UnitProcessor().process(message)
