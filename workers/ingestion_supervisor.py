from __future__ import annotations

import contextlib
import logging

from motor.motor_asyncio import AsyncIOMotorClient

from adapters.external.database.mongodb_client import get_mongo_client
from adapters.external.database.tick_store_repository_memory import TickStoreRepositoryMemory
from adapters.external.database.tick_store_repository_mongodb import TickStoreRepositoryMongoDB
from adapters.external.database.tick_store_repository_sql import TickStoreRepositorySQL
from config.settings import Settings, settings
from core.domain.errors import WriteError
from core.repositories.tick_store_repository import TickStoreRepository
from core.usecases.ingest_ticks_use_case import IngestTicksUseCase
from core.usecases.query_ticks_use_case import QueryTicksUseCase
from core.usecases.start_simulated_ticks_use_case import StartSimulatedTicksUseCase
from core.usecases.write_batch_use_case import WriteBatchUseCase


class IngestionSupervisor:
    """
    High-level supervisor for api-stock-ticks.

    Responsibilities:
    - Build the configured tick store and ensure its schema/indexes.
    - Wire writer -> ingestion buffer and the query service on the same store.
    - Start/stop the buffer background tasks and the optional simulator.
    """

    def __init__(self, *, cfg: Settings = settings, tick_store: TickStoreRepository | None = None) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)
        self._cfg = cfg
        self._injected_store = tick_store

        self._mongo_client: AsyncIOMotorClient | None = None
        self._store: TickStoreRepository | None = None

        self._writer: WriteBatchUseCase | None = None
        self._ingest: IngestTicksUseCase | None = None
        self._query: QueryTicksUseCase | None = None
        self._simulator: StartSimulatedTicksUseCase | None = None

    @property
    def ingest(self) -> IngestTicksUseCase:
        if self._ingest is None:
            raise RuntimeError("supervisor not started")
        return self._ingest

    @property
    def query(self) -> QueryTicksUseCase:
        if self._query is None:
            raise RuntimeError("supervisor not started")
        return self._query

    @property
    def store(self) -> TickStoreRepository | None:
        return self._store

    async def start(self) -> None:
        """
        Build the store, ensure indexes, and start ingestion.
        """
        cfg = self._cfg
        self._store = self._injected_store or self._build_store()
        await self._store.ensure_indexes()

        self._writer = WriteBatchUseCase(
            tick_store=self._store,
            retry_base_s=cfg.WRITER_RETRY_BASE_MS / 1000.0,
            retry_cap_s=cfg.WRITER_RETRY_CAP_MS / 1000.0,
            max_attempts=cfg.WRITER_MAX_ATTEMPTS,
        )
        self._ingest = IngestTicksUseCase(
            writer=self._writer,
            max_batch_size=cfg.BUFFER_MAX_BATCH_SIZE,
            max_batch_age_s=cfg.BUFFER_MAX_BATCH_AGE_MS / 1000.0,
            on_write_error=self._on_write_error,
        )
        self._query = QueryTicksUseCase(tick_store=self._store, default_timeout_s=cfg.QUERY_TIMEOUT_S)

        self._ingest.start()

        if cfg.SIMULATOR_ENABLED and cfg.SIMULATOR_STOCK_IDS:
            self._simulator = StartSimulatedTicksUseCase(
                ingest_uc=self._ingest,
                stock_ids=cfg.SIMULATOR_STOCK_IDS,
                interval_s=cfg.SIMULATOR_INTERVAL_MS / 1000.0,
                initial_price=cfg.SIMULATOR_INITIAL_PRICE,
                max_step=cfg.SIMULATOR_MAX_STEP,
            )
            self._simulator.start()

        self._logger.info(
            "Tick ingestion started. backend=%s batch_size=%s batch_age_ms=%s simulator=%s",
            cfg.TICK_STORE_BACKEND if self._injected_store is None else type(self._store).__name__,
            cfg.BUFFER_MAX_BATCH_SIZE,
            cfg.BUFFER_MAX_BATCH_AGE_MS,
            self._simulator is not None,
        )

    async def stop(self) -> None:
        """
        Stop producers first, drain the buffer, then close the store.
        """
        if self._simulator is not None:
            await self._simulator.stop()
            self._simulator = None

        if self._ingest is not None:
            await self._ingest.stop(drain=True)

        if self._store is not None and self._injected_store is None:
            with contextlib.suppress(Exception):
                await self._store.aclose()

        if self._mongo_client:
            self._mongo_client.close()
            self._mongo_client = None

    def _build_store(self) -> TickStoreRepository:
        backend = self._cfg.TICK_STORE_BACKEND

        if backend == "memory":
            return TickStoreRepositoryMemory()

        if backend == "mongodb":
            self._mongo_client = get_mongo_client(self._cfg.MONGODB_URL)
            return TickStoreRepositoryMongoDB(self._mongo_client[self._cfg.MONGODB_DB_NAME])

        if backend == "sql":
            return TickStoreRepositorySQL.from_url(self._cfg.SQL_DATABASE_URL)

        raise ValueError(f"Unknown TICK_STORE_BACKEND={backend!r} (expected memory | mongodb | sql)")

    async def _on_write_error(self, exc: WriteError) -> None:
        """
        Surface a failed background flush. The batch is not requeued
        automatically; the log line identifies what was lost.
        """
        self._logger.error(
            "Unflushed batch seq=%s stock_ids=%s first_ts=%s last_ts=%s",
            exc.batch.seq,
            sorted({t.stock_id for t in exc.batch.ticks}),
            exc.batch.ticks[0].ts.isoformat(),
            exc.batch.ticks[-1].ts.isoformat(),
        )
