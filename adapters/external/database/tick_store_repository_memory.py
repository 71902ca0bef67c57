from __future__ import annotations

import bisect
import math
from datetime import datetime
from typing import Dict, List, Sequence, Tuple

from core.domain.entities.tick_entity import IdentifierRange, PersistedTickEntity, TickEntity, to_utc
from core.domain.errors import StoreError
from core.repositories.tick_store_repository import TickStoreRepository


def _order_key(rec: PersistedTickEntity) -> Tuple[datetime, int]:
    return rec.ts, rec.id


class TickStoreRepositoryMemory(TickStoreRepository):
    """
    In-process tick store.

    Records are kept per stock in a list sorted by (ts, id), so reads slice
    instead of sorting. A batch is staged in full before any record is
    committed, so a failure while staging leaves nothing behind. Used as the
    development backend and as the store behind the test suite.
    """

    def __init__(self) -> None:
        self._records: Dict[int, List[PersistedTickEntity]] = {}
        self._last_id = 0

    async def ensure_indexes(self) -> None:
        return None

    async def insert_batch(self, ticks: Sequence[TickEntity]) -> IdentifierRange:
        if not ticks:
            raise StoreError("insert_batch called with an empty batch", transient=False)

        next_id = self._last_id
        staged: List[PersistedTickEntity] = []
        for tick in ticks:
            next_id += 1
            staged.append(self._stage(tick, next_id))

        # commit
        for rec in staged:
            bisect.insort(self._records.setdefault(rec.stock_id, []), rec, key=_order_key)
        self._last_id = next_id

        return IdentifierRange(first_id=staged[0].id, last_id=staged[-1].id)

    async def select_latest(self, stock_id: int, n: int) -> List[PersistedTickEntity]:
        rows = self._records.get(int(stock_id), [])
        n = int(n)
        if n <= 0:
            return []
        return rows[-n:][::-1]

    async def select_range(self, stock_id: int, start: datetime, end: datetime) -> List[PersistedTickEntity]:
        rows = self._records.get(int(stock_id), [])
        lo = bisect.bisect_left(rows, (to_utc(start), 0), key=_order_key)
        hi = bisect.bisect_right(rows, (to_utc(end), math.inf), key=_order_key)
        return rows[lo:hi]

    def count(self) -> int:
        return sum(len(v) for v in self._records.values())

    def _stage(self, tick: TickEntity, record_id: int) -> PersistedTickEntity:
        return PersistedTickEntity(id=record_id, stock_id=tick.stock_id, price=tick.price, ts=tick.ts)
