from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from core.domain.entities.tick_entity import TickEntity


class TickInDTO(BaseModel):
    """
    DTO for one incoming price tick.

    Business rules (positive stock_id, non-negative price) are enforced by the
    ingestion buffer, so a rejected tick reports the same message whether it
    came over HTTP or from an in-process producer.
    """

    stock_id: int = Field(..., description="Instrument identifier, e.g. 1")
    price: float = Field(..., description="Observed price, e.g. 100.5")
    ts: datetime = Field(..., description="Observation time (ISO-8601). Naive values are read as UTC.")

    def to_entity(self) -> TickEntity:
        return TickEntity(stock_id=self.stock_id, price=self.price, ts=self.ts)


class TickBatchInDTO(BaseModel):
    """
    DTO for several ticks submitted in one call.
    """

    ticks: List[TickInDTO] = Field(..., description="Ticks in submission order")

    @field_validator("ticks")
    @classmethod
    def _non_empty(cls, v: List[TickInDTO]) -> List[TickInDTO]:
        if not v:
            raise ValueError("ticks must not be empty")
        return v


class AcceptedOutDTO(BaseModel):
    accepted: int


class TickOutDTO(BaseModel):
    """
    DTO returned by API for persisted ticks.
    """

    id: int
    stock_id: int
    price: float
    ts: datetime


class WriteResultOutDTO(BaseModel):
    count: int
    first_id: Optional[int] = None
    last_id: Optional[int] = None
    attempts: int = 0
