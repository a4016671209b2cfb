"""
Error types for the job pipeline.

Every error carries a ``retryable`` flag. Queue consumers use it to decide
between redelivery (transient conditions such as a record that is not yet
visible, or an upstream outage) and immediate dead-lettering (logic errors
that another attempt cannot fix).

    WeatherSpineError
    ├── DispatchError          queue unavailable at publish time
    ├── NotFound               record or artifact missing
    ├── AlreadyExists          duplicate create (logic error)
    ├── UpstreamUnavailable    item source or transform failed
    └── ConcurrencyConflict    version token mismatch on write
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError


class WeatherSpineError(Exception):
    """Base class for all pipeline errors."""

    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        retryable: bool | None = None,
        cause: BaseException | None = None,
        **context: Any,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.retryable = self.default_retryable if retryable is None else retryable
        self.context = context
        if cause is not None:
            self.__cause__ = cause

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "retryable": self.retryable,
            **self.context,
        }


class DispatchError(WeatherSpineError):
    """A message could not be published to a queue."""

    default_retryable = True

    def __init__(self, message: str, *, published: int = 0, **kwargs: Any) -> None:
        super().__init__(message, published=published, **kwargs)
        self.published = published


class NotFound(WeatherSpineError):
    """A job record or artifact does not exist (yet)."""

    default_retryable = True


class AlreadyExists(WeatherSpineError):
    """A job record with the same id was already created."""

    default_retryable = False


class UpstreamUnavailable(WeatherSpineError):
    """The item source or transform collaborator failed."""

    default_retryable = True


class ConcurrencyConflict(WeatherSpineError):
    """Another writer updated the record between read and write."""

    default_retryable = True


def is_retryable(exc: BaseException) -> bool:
    """Decide whether a consumption failure should be redelivered.

    Malformed messages (pydantic ValidationError, itself a ValueError) and
    other ValueErrors are logic errors and never retried; unknown exceptions
    are treated as transient.
    """
    if isinstance(exc, (ValidationError, ValueError)):
        return False
    if isinstance(exc, WeatherSpineError):
        return exc.retryable
    return True
