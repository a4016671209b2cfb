"""QueueBackend protocol definition."""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class QueueBackend(Protocol):
    """
    Protocol for queue backends.

    A backend carries JSON payloads to the handler of a named queue with
    at-least-once semantics. Backends are responsible for:
    - Publishing messages to the intake and units queues
    - Redelivering failed consumptions a bounded number of times
    - Handing poison messages to the dead letter store
    - Reporting health status
    """

    name: str

    def publish(self, queue: str, payload: dict[str, Any]) -> str | None:
        """
        Publish one message.

        Returns:
            Backend-specific message ID (e.g., Celery task ID)

        Raises:
            DispatchError: If the queue is unavailable
        """
        ...

    def health(self) -> dict:
        """
        Check backend health.

        Returns:
            Health status dict with at least {"healthy": bool, "message": str}
        """
        ...

    def start(self) -> None:
        """Start the backend (e.g., begin background delivery)."""
        ...

    def stop(self) -> None:
        """Stop the backend gracefully."""
        ...
