"""Dead letter store for messages that could not be consumed."""

import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

import structlog
from psycopg.types.json import Jsonb
from pydantic import BaseModel, Field

from weather_spine.models import utcnow

logger = structlog.get_logger()


class DeadLetter(BaseModel):
    """A message that exhausted its delivery attempts (or was malformed)."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    queue: str
    job_id: str | None = None
    payload: dict[str, Any]
    error: str
    attempts: int
    created_at: datetime = Field(default_factory=utcnow)


class DeadLetterStore(ABC):
    """
    Where poison messages end up.

    Recording is for operator inspection only; nothing is replayed
    automatically.
    """

    name = "base"

    def record(self, queue: str, payload: dict[str, Any], error: str, attempts: int) -> DeadLetter:
        letter = DeadLetter(
            queue=queue,
            job_id=payload.get("job_id") if isinstance(payload, dict) else None,
            payload=payload if isinstance(payload, dict) else {"raw": payload},
            error=error,
            attempts=attempts,
        )
        self._save(letter)
        logger.error(
            "message_dead_lettered",
            queue=queue,
            job_id=letter.job_id,
            attempts=attempts,
            error=error,
        )
        return letter

    @abstractmethod
    def _save(self, letter: DeadLetter) -> None:
        ...

    @abstractmethod
    def list(self, limit: int = 100) -> list[DeadLetter]:
        """Most recent first."""
        ...


class MemoryDeadLetterStore(DeadLetterStore):
    name = "memory"

    def __init__(self):
        self._letters: list[DeadLetter] = []
        self._lock = threading.Lock()

    def _save(self, letter: DeadLetter) -> None:
        with self._lock:
            self._letters.append(letter)

    def list(self, limit: int = 100) -> list[DeadLetter]:
        with self._lock:
            letters = list(self._letters)
        return sorted(letters, key=lambda d: d.created_at, reverse=True)[:limit]


class PostgresDeadLetterStore(DeadLetterStore):
    name = "postgres"

    def _save(self, letter: DeadLetter) -> None:
        from weather_spine.db import get_connection

        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO dead_letters (id, queue, job_id, payload, error, attempts, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    letter.id,
                    letter.queue,
                    letter.job_id,
                    Jsonb(letter.payload),
                    letter.error,
                    letter.attempts,
                    letter.created_at,
                ),
            )
            conn.commit()

    def list(self, limit: int = 100) -> list[DeadLetter]:
        from weather_spine.db import get_connection

        with get_connection() as conn:
            result = conn.execute(
                """
                SELECT id, queue, job_id, payload, error, attempts, created_at
                FROM dead_letters
                ORDER BY created_at DESC
                LIMIT %s
                """,
                (limit,),
            )
            return [DeadLetter.model_validate(dict(row)) for row in result.fetchall()]


_dlq: DeadLetterStore | None = None


def get_dead_letter_store() -> DeadLetterStore:
    """Get or create the dead letter store; it lives beside the status store."""
    global _dlq
    if _dlq is None:
        from weather_spine.config import get_settings

        if get_settings().status_store_type == "postgres":
            _dlq = PostgresDeadLetterStore()
        else:
            _dlq = MemoryDeadLetterStore()
    return _dlq


def set_dead_letter_store(store: DeadLetterStore | None) -> None:
    """Set (or with None, reset) the dead letter store instance."""
    global _dlq
    _dlq = store
