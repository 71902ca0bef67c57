from __future__ import annotations

from datetime import datetime
from typing import List, Sequence

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import (
    ConnectionFailure,
    ExecutionTimeout,
    PyMongoError,
    WTimeoutError,
)
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from core.domain.entities.tick_entity import IdentifierRange, PersistedTickEntity, TickEntity, to_epoch_us
from core.domain.errors import StoreError
from core.repositories.tick_store_repository import TickStoreRepository

_TRANSIENT_LABELS = ("TransientTransactionError", "RetryableWriteError")


def classify_mongo_error(exc: PyMongoError) -> StoreError:
    """
    Map a driver error onto StoreError.

    Network failures, server selection and operation timeouts and anything
    the server labels as retryable are transient; the rest (duplicate key,
    validation, auth) is permanent.
    """
    transient = isinstance(exc, (ConnectionFailure, ExecutionTimeout, WTimeoutError)) or any(
        exc.has_error_label(label) for label in _TRANSIENT_LABELS
    )
    return StoreError(f"mongodb: {exc}", transient=transient)


def tick_documents(ticks: Sequence[TickEntity], first_id: int) -> List[dict]:
    """Documents for one batch, ids assigned consecutively from `first_id`."""
    docs = []
    for offset, tick in enumerate(ticks):
        payload = tick.to_mongo()
        payload["_id"] = first_id + offset
        docs.append(payload)
    return docs


class TickStoreRepositoryMongoDB(TickStoreRepository):
    """
    MongoDB repository for persisted ticks.

    Ids come from a counter document bumped by the batch size inside the same
    multi-document transaction as the insert, so a batch either lands with a
    contiguous id range or not at all. Timestamps are stored as epoch
    microseconds (`ts_us`) since BSON dates stop at milliseconds.
    """

    COLLECTION = "stock_ticks"
    COUNTERS = "counters"
    COUNTER_KEY = "stock_ticks_id"

    def __init__(self, db: AsyncIOMotorDatabase):
        self._db = db

    async def ensure_indexes(self) -> None:
        col = self._db[self.COLLECTION]
        try:
            # latest-N (walked backwards) and range scans per stock
            await col.create_index([("stock_id", 1), ("ts_us", 1), ("_id", 1)])
        except PyMongoError as exc:
            raise classify_mongo_error(exc) from exc

    async def insert_batch(self, ticks: Sequence[TickEntity]) -> IdentifierRange:
        if not ticks:
            raise StoreError("insert_batch called with an empty batch", transient=False)

        col = self._db[self.COLLECTION]
        counters = self._db[self.COUNTERS]
        n = len(ticks)

        try:
            async with await self._db.client.start_session() as session:
                async with session.start_transaction(
                    read_concern=ReadConcern("snapshot"),
                    write_concern=WriteConcern("majority"),
                ):
                    counter = await counters.find_one_and_update(
                        {"_id": self.COUNTER_KEY},
                        {"$inc": {"seq": n}},
                        upsert=True,
                        return_document=ReturnDocument.AFTER,
                        session=session,
                    )
                    last_id = int(counter["seq"])
                    first_id = last_id - n + 1

                    docs = tick_documents(ticks, first_id)
                    await col.insert_many(docs, ordered=True, session=session)
        except PyMongoError as exc:
            raise classify_mongo_error(exc) from exc

        return IdentifierRange(first_id=first_id, last_id=last_id)

    async def select_latest(self, stock_id: int, n: int) -> List[PersistedTickEntity]:
        col = self._db[self.COLLECTION].with_options(read_concern=ReadConcern("majority"))
        try:
            cur = (
                col.find({"stock_id": int(stock_id)})
                .sort([("ts_us", -1), ("_id", -1)])
                .limit(int(n))
            )
            docs = await cur.to_list(length=int(n))
        except PyMongoError as exc:
            raise classify_mongo_error(exc) from exc
        return [PersistedTickEntity.from_mongo(d) for d in docs if d]

    async def select_range(self, stock_id: int, start: datetime, end: datetime) -> List[PersistedTickEntity]:
        col = self._db[self.COLLECTION].with_options(read_concern=ReadConcern("majority"))
        try:
            cur = (
                col.find(
                    {
                        "stock_id": int(stock_id),
                        "ts_us": {"$gte": to_epoch_us(start), "$lte": to_epoch_us(end)},
                    }
                )
                .sort([("ts_us", 1), ("_id", 1)])
            )
            docs = await cur.to_list(length=None)
        except PyMongoError as exc:
            raise classify_mongo_error(exc) from exc
        return [PersistedTickEntity.from_mongo(d) for d in docs if d]
