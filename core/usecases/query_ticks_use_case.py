from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, List, Optional, TypeVar

from core.domain.entities.tick_entity import PersistedTickEntity, to_utc
from core.domain.errors import NotFoundError, QueryTimeoutError, ValidationError
from core.repositories.tick_store_repository import TickStoreRepository

T = TypeVar("T")


class QueryTicksUseCase:
    """
    Read side: latest-N and time-range queries over persisted ticks.

    Reads go straight to the store (no locking here) and only see committed
    batches. Every call runs under a deadline; when it expires the call
    fails with QueryTimeoutError and returns nothing.
    """

    def __init__(
        self,
        *,
        tick_store: TickStoreRepository,
        default_timeout_s: Optional[float] = 5.0,
        logger: logging.Logger | None = None,
    ):
        self._store = tick_store
        self._default_timeout_s = default_timeout_s
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    async def latest(self, stock_id: int, n: int, *, timeout_s: Optional[float] = None) -> List[PersistedTickEntity]:
        """
        Up to n most recent records, newest first (ties: higher id first).

        Raises NotFoundError only when the stock has no records at all.
        """
        _require_stock_id(stock_id)
        if int(n) < 1:
            raise ValidationError(f"n must be >= 1, got {n}")

        rows = await self._with_deadline(self._store.select_latest(int(stock_id), int(n)), timeout_s, "latest")
        if not rows:
            raise NotFoundError(f"no ticks for stock_id={stock_id}")
        return rows

    async def range(
        self,
        stock_id: int,
        start: datetime,
        end: datetime,
        *,
        timeout_s: Optional[float] = None,
    ) -> List[PersistedTickEntity]:
        """
        All records with start <= ts <= end, oldest first. Empty list if none.
        """
        _require_stock_id(stock_id)
        start, end = to_utc(start), to_utc(end)
        if start > end:
            raise ValidationError(f"range start {start.isoformat()} is after end {end.isoformat()}")

        return await self._with_deadline(self._store.select_range(int(stock_id), start, end), timeout_s, "range")

    async def _with_deadline(self, coro: Awaitable[T], timeout_s: Optional[float], op: str) -> T:
        timeout = self._default_timeout_s if timeout_s is None else timeout_s
        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError as exc:
            self._logger.warning("Query %s exceeded %.3fs", op, timeout)
            raise QueryTimeoutError(f"{op} query exceeded {timeout}s") from exc


def _require_stock_id(stock_id: int) -> None:
    if int(stock_id) <= 0:
        raise ValidationError(f"stock_id must be positive, got {stock_id}")
