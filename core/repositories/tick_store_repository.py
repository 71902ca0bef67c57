from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Sequence

from core.domain.entities.tick_entity import IdentifierRange, PersistedTickEntity, TickEntity


class TickStoreRepository(ABC):
    """
    Append-only persistence for ticks.

    Implementations must:
    - insert a batch atomically (all records or none), assigning
      monotonically increasing ids in batch order;
    - serve selects with read-committed visibility;
    - raise StoreError (transient or permanent) for every store failure.
    """

    @abstractmethod
    async def ensure_indexes(self) -> None:
        """
        Create the schema / indexes backing latest-N and range lookups per stock.
        """
        raise NotImplementedError

    @abstractmethod
    async def insert_batch(self, ticks: Sequence[TickEntity]) -> IdentifierRange:
        """
        Insert all ticks in one transaction and return the assigned id range.
        """
        raise NotImplementedError

    @abstractmethod
    async def select_latest(self, stock_id: int, n: int) -> List[PersistedTickEntity]:
        """
        Up to n records for the stock, newest first (ts desc, id desc).
        """
        raise NotImplementedError

    @abstractmethod
    async def select_range(self, stock_id: int, start: datetime, end: datetime) -> List[PersistedTickEntity]:
        """
        Records for the stock with start <= ts <= end, oldest first (ts asc, id asc).
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release connections held by the repository."""
        return None
