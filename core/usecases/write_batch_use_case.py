from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from core.domain.entities.batch_entity import TickBatch, WriteResult
from core.domain.errors import StoreError, WriteError
from core.repositories.tick_store_repository import TickStoreRepository
from core.services.retry_state_machine import RetryState, RetryStateMachine


class WriteBatchUseCase:
    """
    Persists tick batches through the store, one batch at a time.

    Behavior:
      - Each batch is a single insert_batch call (one transaction, all-or-nothing).
      - Transient StoreErrors are retried with exponential backoff driven by
        RetryStateMachine; permanent ones fail immediately.
      - Terminal failures raise WriteError carrying the batch.
      - A write that has started is shielded from caller cancellation and
        always runs to completion or failure, holding the writer lock until
        then; outcomes nobody awaits any more are logged.
    """

    def __init__(
        self,
        *,
        tick_store: TickStoreRepository,
        retry_base_s: float = 0.1,
        retry_cap_s: float = 5.0,
        max_attempts: int = 5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: logging.Logger | None = None,
    ):
        self._store = tick_store
        self._retry_base_s = float(retry_base_s)
        self._retry_cap_s = float(retry_cap_s)
        self._max_attempts = int(max_attempts)
        self._sleep = sleep
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._lock = asyncio.Lock()

    def _new_retry(self) -> RetryStateMachine:
        return RetryStateMachine(
            base_s=self._retry_base_s,
            cap_s=self._retry_cap_s,
            max_attempts=self._max_attempts,
        )

    async def write(self, batch: TickBatch) -> WriteResult:
        if not batch.ticks:
            return WriteResult(count=0, id_range=None, attempts=0)

        # lock, retries and insert run as one task; a cancelled caller leaves
        # it running, so the lock stays held until the batch is settled
        task = asyncio.ensure_future(self._write_serialized(batch))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(lambda t: self._report_orphaned(batch, t))
            raise

    async def _write_serialized(self, batch: TickBatch) -> WriteResult:
        async with self._lock:
            return await self._write_locked(batch)

    def _report_orphaned(self, batch: TickBatch, task: asyncio.Future) -> None:
        if task.cancelled():
            self._logger.error("Batch seq=%s cancelled while its caller was gone", batch.seq)
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error("Batch seq=%s failed after its caller was cancelled: %s", batch.seq, exc)
            return
        self._logger.info("Batch seq=%s written after its caller was cancelled", batch.seq)

    async def _write_locked(self, batch: TickBatch) -> WriteResult:
        retry = self._new_retry()
        last_error: Optional[StoreError] = None

        while not retry.is_terminal:
            attempt = retry.begin()
            try:
                id_range = await self._store.insert_batch(batch.ticks)
            except StoreError as exc:
                last_error = exc
                delay = retry.record_failure(transient=exc.transient)
                if delay is None:
                    break
                self._logger.warning(
                    "Transient store error on batch seq=%s attempt=%s/%s, retrying in %.3fs: %s",
                    batch.seq,
                    attempt,
                    retry.max_attempts,
                    delay,
                    exc,
                )
                await self._sleep(delay)
                continue

            retry.record_success()
            self._logger.debug(
                "Batch seq=%s written: count=%s ids=%s..%s attempts=%s",
                batch.seq,
                len(batch.ticks),
                id_range.first_id,
                id_range.last_id,
                attempt,
            )
            return WriteResult(count=len(batch.ticks), id_range=id_range, attempts=attempt)

        if retry.state is RetryState.EXHAUSTED:
            msg = f"batch seq={batch.seq} not written after {retry.attempt} attempts: {last_error}"
        else:
            msg = f"batch seq={batch.seq} rejected by store: {last_error}"
        raise WriteError(msg, batch=batch, cause=last_error, attempts=retry.attempt) from last_error
