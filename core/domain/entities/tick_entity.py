from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel, field_validator

from core.domain.entities.base_entity import MongoEntity

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_US = timedelta(microseconds=1)


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_us(value: datetime) -> int:
    return (to_utc(value) - EPOCH) // _ONE_US


def from_epoch_us(value: int) -> datetime:
    return EPOCH + timedelta(microseconds=int(value))


class TickEntity(MongoEntity):
    """
    One observed price sample for a stock.

    The model only normalizes (timestamp -> UTC). Business validation
    (positive stock_id, non-negative price) happens at ingestion so that
    the caller gets a domain ValidationError instead of a pydantic one.
    """

    stock_id: int
    price: float
    ts: datetime

    @field_validator("ts")
    @classmethod
    def _normalize_ts(cls, v: datetime) -> datetime:
        return to_utc(v)

    def to_mongo(self) -> dict[str, Any]:
        # BSON dates stop at milliseconds, keep the full resolution as an int
        data = super().to_mongo()
        data.pop("ts", None)
        data["ts_us"] = to_epoch_us(self.ts)
        return data

    @classmethod
    def from_mongo(cls, doc: Optional[dict[str, Any]]):
        if not doc:
            return None
        data = dict(doc)
        if "ts_us" in data:
            data["ts"] = from_epoch_us(data.pop("ts_us"))
        return super().from_mongo(data)


class PersistedTickEntity(TickEntity):
    """
    A tick as stored: same fields plus the store-assigned, monotonically
    increasing `id`. Read-only once created.
    """

    id: int


class IdentifierRange(BaseModel):
    """Inclusive range of identifiers assigned to one inserted batch."""

    first_id: int
    last_id: int
