from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Sequence

from sqlalchemy import BigInteger, DateTime, Float, Index, Integer, select
from sqlalchemy.exc import DBAPIError, DisconnectionError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from core.domain.entities.tick_entity import IdentifierRange, PersistedTickEntity, TickEntity, to_utc
from core.domain.errors import StoreError
from core.repositories.tick_store_repository import TickStoreRepository


class Base(DeclarativeBase):
    """Declarative base for the tick store tables."""


class StockTickRow(Base):
    """
    One persisted tick.

    Attributes:
        id: Surrogate key, monotonic and never reused (append-only table).
        stock_id: Instrument identifier.
        price: Observed price.
        ts: Observation time, naive UTC with microsecond precision.
    """

    __tablename__ = "stock_ticks"

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    stock_id: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    __table_args__ = (
        Index("ix_stock_ticks_stock_id_ts_id", "stock_id", "ts", "id"),
        {"sqlite_autoincrement": True},
    )


def _to_db_ts(value: datetime) -> datetime:
    return to_utc(value).replace(tzinfo=None)


def _to_entity(row: StockTickRow) -> PersistedTickEntity:
    return PersistedTickEntity(
        id=int(row.id),
        stock_id=int(row.stock_id),
        price=float(row.price),
        ts=row.ts.replace(tzinfo=timezone.utc),
    )


def classify_sql_error(exc: SQLAlchemyError) -> StoreError:
    """
    Connection loss, pool exhaustion, and operational errors (locks,
    timeouts, resets) are transient; integrity/data/programming errors are
    permanent.
    """
    transient = isinstance(exc, (OperationalError, DisconnectionError, PoolTimeoutError)) or (
        isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)
    )
    return StoreError(f"sql: {exc}", transient=transient)


class TickStoreRepositorySQL(TickStoreRepository):
    """
    Relational tick store on SQLAlchemy's asyncio engine.

    Defaults to SQLite through aiosqlite; any async driver URL
    (e.g. postgresql+asyncpg://...) works the same way.
    """

    def __init__(self, *, engine: AsyncEngine):
        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str, **engine_kwargs) -> "TickStoreRepositorySQL":
        return cls(engine=create_async_engine(url, **engine_kwargs))

    async def ensure_indexes(self) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            raise classify_sql_error(exc) from exc

    async def insert_batch(self, ticks: Sequence[TickEntity]) -> IdentifierRange:
        if not ticks:
            raise StoreError("insert_batch called with an empty batch", transient=False)

        rows = [StockTickRow(stock_id=t.stock_id, price=t.price, ts=_to_db_ts(t.ts)) for t in ticks]
        try:
            async with self._sessions.begin() as session:
                # ORM flush keeps add() order for a single mapper
                session.add_all(rows)
                await session.flush()
        except SQLAlchemyError as exc:
            raise classify_sql_error(exc) from exc

        return IdentifierRange(first_id=int(rows[0].id), last_id=int(rows[-1].id))

    async def select_latest(self, stock_id: int, n: int) -> List[PersistedTickEntity]:
        stmt = (
            select(StockTickRow)
            .where(StockTickRow.stock_id == int(stock_id))
            .order_by(StockTickRow.ts.desc(), StockTickRow.id.desc())
            .limit(int(n))
        )
        return await self._select(stmt)

    async def select_range(self, stock_id: int, start: datetime, end: datetime) -> List[PersistedTickEntity]:
        stmt = (
            select(StockTickRow)
            .where(
                StockTickRow.stock_id == int(stock_id),
                StockTickRow.ts >= _to_db_ts(start),
                StockTickRow.ts <= _to_db_ts(end),
            )
            .order_by(StockTickRow.ts.asc(), StockTickRow.id.asc())
        )
        return await self._select(stmt)

    async def aclose(self) -> None:
        await self._engine.dispose()

    async def _select(self, stmt) -> List[PersistedTickEntity]:
        try:
            async with self._sessions() as session:
                result = await session.scalars(stmt)
                return [_to_entity(r) for r in result.all()]
        except SQLAlchemyError as exc:
            raise classify_sql_error(exc) from exc
