from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List, Sequence

from adapters.external.database.tick_store_repository_memory import TickStoreRepositoryMemory
from core.domain.entities.tick_entity import IdentifierRange, PersistedTickEntity, TickEntity
from core.domain.errors import StoreError

T0 = datetime(2024, 1, 2, 14, 30, 0, tzinfo=timezone.utc)


def make_tick(stock_id: int = 1, price: float = 100.0, offset_s: float = 0.0) -> TickEntity:
    return TickEntity(stock_id=stock_id, price=price, ts=T0 + timedelta(seconds=offset_s))


class RecordingSleep:
    """Stands in for asyncio.sleep; records the requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FlakyTickStore(TickStoreRepositoryMemory):
    """Fails the first `failures` inserts with the given error kind."""

    def __init__(self, *, failures: int, transient: bool = True) -> None:
        super().__init__()
        self.failures = failures
        self.transient = transient
        self.insert_calls = 0

    async def insert_batch(self, ticks: Sequence[TickEntity]) -> IdentifierRange:
        self.insert_calls += 1
        if self.insert_calls <= self.failures:
            raise StoreError("connection reset by peer", transient=self.transient)
        return await super().insert_batch(ticks)


class MidBatchFailureStore(TickStoreRepositoryMemory):
    """Blows up while staging the record at `fail_at` (0-based) within a batch."""

    def __init__(self, *, fail_at: int) -> None:
        super().__init__()
        self.fail_at = fail_at
        self._staged_in_batch = 0

    async def insert_batch(self, ticks: Sequence[TickEntity]) -> IdentifierRange:
        self._staged_in_batch = 0
        return await super().insert_batch(ticks)

    def _stage(self, tick: TickEntity, record_id: int) -> PersistedTickEntity:
        if self._staged_in_batch == self.fail_at:
            raise StoreError("check constraint violated", transient=False)
        self._staged_in_batch += 1
        return super()._stage(tick, record_id)


class SlowTickStore(TickStoreRepositoryMemory):
    """Selects take `delay_s` seconds."""

    def __init__(self, *, delay_s: float) -> None:
        super().__init__()
        self.delay_s = delay_s

    async def select_latest(self, stock_id: int, n: int) -> List[PersistedTickEntity]:
        await asyncio.sleep(self.delay_s)
        return await super().select_latest(stock_id, n)

    async def select_range(self, stock_id: int, start: datetime, end: datetime) -> List[PersistedTickEntity]:
        await asyncio.sleep(self.delay_s)
        return await super().select_range(stock_id, start, end)


class SlowInsertStore(TickStoreRepositoryMemory):
    """Inserts take `delay_s` seconds; tracks how many run at once."""

    def __init__(self, *, delay_s: float) -> None:
        super().__init__()
        self.delay_s = delay_s
        self.in_flight = 0
        self.max_in_flight = 0

    async def insert_batch(self, ticks: Sequence[TickEntity]) -> IdentifierRange:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay_s)
            return await super().insert_batch(ticks)
        finally:
            self.in_flight -= 1


class BrokenTickStore(TickStoreRepositoryMemory):
    """Inserts fail with an error that is not a StoreError."""

    async def insert_batch(self, ticks: Sequence[TickEntity]) -> IdentifierRange:
        raise RuntimeError("driver returned a malformed reply")
