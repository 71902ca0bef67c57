from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from core.domain.entities.tick_entity import IdentifierRange, TickEntity


class TickBatch(BaseModel):
    """
    Ordered group of ticks accumulated by the ingestion buffer.

    `seq` is buffer-local and increases by one per opened batch.
    `opened_at` is a monotonic clock reading (event loop time).
    """

    seq: int
    opened_at: float
    ticks: List[TickEntity] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ticks)


class WriteResult(BaseModel):
    """Outcome of a successful batch write."""

    count: int
    id_range: Optional[IdentifierRange] = None
    attempts: int = 0
