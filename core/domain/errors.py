from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from core.domain.entities.batch_entity import TickBatch


class TickServiceError(Exception):
    """Base class for every error raised by the tick service."""


class ValidationError(TickServiceError):
    """Malformed input. Never retried."""


class NotFoundError(TickServiceError):
    """A query found no data for the requested stock."""


class QueryTimeoutError(TickServiceError, TimeoutError):
    """A query exceeded the caller-supplied deadline."""


class StoreError(TickServiceError):
    """
    Failure reported by a persistence adapter.

    `transient` tells the writer whether a retry may succeed
    (connection reset, timeout) or not (constraint violation, bad data).
    """

    def __init__(self, message: str, *, transient: bool = False):
        super().__init__(message)
        self.transient = bool(transient)


class WriteError(TickServiceError):
    """
    A batch could not be persisted: retries were exhausted or the store
    reported a permanent failure. Carries the unflushed batch so the caller
    can requeue it.
    """

    def __init__(self, message: str, *, batch: "TickBatch", cause: Optional[StoreError] = None, attempts: int = 0):
        super().__init__(message)
        self.batch = batch
        self.cause = cause
        self.attempts = int(attempts)
