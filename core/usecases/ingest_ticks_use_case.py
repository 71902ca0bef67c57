# core/usecases/ingest_ticks_use_case.py
from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from core.domain.entities.batch_entity import TickBatch, WriteResult
from core.domain.entities.tick_entity import TickEntity
from core.domain.errors import ValidationError, WriteError
from core.usecases.write_batch_use_case import WriteBatchUseCase

WriteErrorHandler = Callable[[WriteError], Awaitable[None]]


def validate_tick(tick: TickEntity) -> None:
    """Raise ValidationError unless stock_id is positive and price finite and >= 0."""
    if int(tick.stock_id) <= 0:
        raise ValidationError(f"stock_id must be positive, got {tick.stock_id}")
    price = float(tick.price)
    if math.isnan(price) or math.isinf(price):
        raise ValidationError(f"price must be finite, got {tick.price}")
    if price < 0:
        raise ValidationError(f"price must be non-negative, got {tick.price}")


class IngestTicksUseCase:
    """
    Ingestion buffer in front of the writer.

    Ticks are appended to one open batch. The batch is handed off when it
    reaches `max_batch_size` or when `max_batch_age_s` has passed since it
    opened, whichever comes first. Handoff swaps in a fresh batch under the
    same lock that guards append, then queues the old one for a single
    background flush worker, so `submit` never waits on the writer.
    """

    def __init__(
        self,
        *,
        writer: WriteBatchUseCase,
        max_batch_size: int = 100,
        max_batch_age_s: float = 0.5,
        on_write_error: Optional[WriteErrorHandler] = None,
        logger: logging.Logger | None = None,
    ):
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        if max_batch_age_s <= 0:
            raise ValueError("max_batch_age_s must be > 0")

        self._writer = writer
        self._max_batch_size = int(max_batch_size)
        self._max_batch_age_s = float(max_batch_age_s)
        self._on_write_error = on_write_error
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._lock = asyncio.Lock()
        self._batch: Optional[TickBatch] = None
        self._next_seq = 1
        self._opened = asyncio.Event()

        self._queue: asyncio.Queue[Optional[Tuple[TickBatch, Optional[asyncio.Future]]]] = asyncio.Queue()
        self._timer_task: asyncio.Task | None = None
        self._flush_task: asyncio.Task | None = None

        self._submitted = 0
        self._rejected = 0
        self._batches_flushed = 0
        self._batches_failed = 0

    # ---- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Start the age timer and the flush worker in background."""
        if self._flush_task is None:
            self._flush_task = asyncio.create_task(self._run_flusher())
        if self._timer_task is None:
            self._timer_task = asyncio.create_task(self._run_timer())

    async def stop(self, *, drain: bool = True) -> None:
        """
        Stop background tasks. With drain=True the open batch and every
        queued batch are written first.
        """
        if self._timer_task is not None:
            self._timer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._timer_task
            self._timer_task = None

        if drain:
            async with self._lock:
                batch = self._swap_locked()
            if batch is not None:
                self._queue.put_nowait((batch, None))

        if self._flush_task is not None:
            if drain:
                self._queue.put_nowait(None)
                await self._flush_task
            else:
                self._flush_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._flush_task
                await self._abandon_queued()
            self._flush_task = None

    async def _abandon_queued(self) -> None:
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is None:
                continue
            batch, fut = item
            exc = WriteError(f"batch seq={batch.seq} dropped: buffer stopped without drain", batch=batch)
            self._batches_failed += 1
            if fut is not None:
                if not fut.done():
                    fut.set_exception(exc)
            else:
                await self._report_write_error(exc)

    # ---- producer API ------------------------------------------------------

    async def submit(self, tick: TickEntity) -> None:
        """
        Accept one tick. Raises ValidationError for invalid input; never
        waits on the writer.
        """
        try:
            validate_tick(tick)
        except ValidationError:
            self._rejected += 1
            raise

        async with self._lock:
            full = self._append_locked(tick)
        if full is not None:
            self._queue.put_nowait((full, None))

    async def submit_many(self, ticks: Iterable[TickEntity]) -> int:
        """
        Accept several ticks in order. All ticks are validated before any
        is appended, so one bad tick rejects the whole call.
        """
        items = list(ticks)
        for tick in items:
            try:
                validate_tick(tick)
            except ValidationError:
                self._rejected += 1
                raise

        full_batches: List[TickBatch] = []
        async with self._lock:
            for tick in items:
                full = self._append_locked(tick)
                if full is not None:
                    full_batches.append(full)
        for batch in full_batches:
            self._queue.put_nowait((batch, None))
        return len(items)

    async def flush(self) -> Optional[WriteResult]:
        """
        Hand off the open batch now and wait for its write.

        Returns None if no batch was open. Raises WriteError if the write
        fails. Once started, batches queued earlier are written first.
        """
        async with self._lock:
            batch = self._swap_locked()
        if batch is None:
            return None

        if self._flush_task is None:
            return await self._write(batch)

        fut: asyncio.Future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((batch, fut))
        return await fut

    def stats(self) -> Dict[str, Any]:
        return {
            "submitted": self._submitted,
            "rejected": self._rejected,
            "batches_flushed": self._batches_flushed,
            "batches_failed": self._batches_failed,
            "pending_ticks": len(self._batch.ticks) if self._batch is not None else 0,
            "queued_batches": self._queue.qsize(),
        }

    # ---- internals (call with self._lock held) -----------------------------

    def _append_locked(self, tick: TickEntity) -> Optional[TickBatch]:
        if self._batch is None:
            self._batch = TickBatch(seq=self._next_seq, opened_at=asyncio.get_running_loop().time())
            self._next_seq += 1
            self._opened.set()

        self._batch.ticks.append(tick)
        self._submitted += 1

        if len(self._batch.ticks) >= self._max_batch_size:
            return self._swap_locked()
        return None

    def _swap_locked(self) -> Optional[TickBatch]:
        batch, self._batch = self._batch, None
        self._opened.clear()
        if batch is None or not batch.ticks:
            return None
        return batch

    # ---- background loops --------------------------------------------------

    async def _run_timer(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await self._opened.wait()

            async with self._lock:
                if self._batch is None:
                    continue
                remaining = self._batch.opened_at + self._max_batch_age_s - loop.time()
                batch = self._swap_locked() if remaining <= 0 else None

            if batch is not None:
                self._queue.put_nowait((batch, None))
                continue

            await asyncio.sleep(remaining)

    async def _run_flusher(self) -> None:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            batch, fut = item
            try:
                result = await self._write(batch)
            except asyncio.CancelledError:
                # stop(drain=False); the writer finishes this batch on its own
                if fut is not None and not fut.done():
                    fut.set_exception(
                        WriteError(f"batch seq={batch.seq} unconfirmed: buffer stopped without drain", batch=batch)
                    )
                raise
            except WriteError as exc:
                if fut is not None:
                    if not fut.done():
                        fut.set_exception(exc)
                else:
                    await self._report_write_error(exc)
                continue

            if fut is not None and not fut.done():
                fut.set_result(result)

    async def _write(self, batch: TickBatch) -> WriteResult:
        try:
            result = await self._writer.write(batch)
        except WriteError:
            self._batches_failed += 1
            raise
        except Exception as exc:
            self._batches_failed += 1
            raise WriteError(f"batch seq={batch.seq} failed: {exc!r}", batch=batch) from exc
        self._batches_flushed += 1
        return result

    async def _report_write_error(self, exc: WriteError) -> None:
        self._logger.error(
            "Batch seq=%s failed after %s attempts (%s ticks): %s",
            exc.batch.seq,
            exc.attempts,
            len(exc.batch.ticks),
            exc,
            exc_info=exc.__cause__ if exc.cause is None else None,
        )
        if self._on_write_error is None:
            return
        try:
            await self._on_write_error(exc)
        except Exception as cb_exc:
            self._logger.exception("on_write_error callback failed for batch seq=%s: %s", exc.batch.seq, cb_exc)
