from __future__ import annotations

from datetime import timedelta

import pytest

from core.domain.errors import NotFoundError, QueryTimeoutError, ValidationError
from core.usecases.query_ticks_use_case import QueryTicksUseCase
from tests.helpers.fakes import T0, SlowTickStore, make_tick


@pytest.mark.asyncio
async def test_latest_returns_what_exists_when_fewer_than_n(store, query):
    await store.insert_batch([make_tick(price=float(i), offset_s=i) for i in range(5)])

    rows = await query.latest(1, 20)

    assert len(rows) == 5
    assert [r.price for r in rows] == [4.0, 3.0, 2.0, 1.0, 0.0]


@pytest.mark.asyncio
async def test_latest_limits_to_n(store, query):
    await store.insert_batch([make_tick(price=float(i), offset_s=i) for i in range(10)])
    rows = await query.latest(1, 3)
    assert [r.price for r in rows] == [9.0, 8.0, 7.0]


@pytest.mark.asyncio
async def test_latest_breaks_timestamp_ties_by_id_desc(store, query):
    await store.insert_batch([make_tick(price=1.0), make_tick(price=2.0), make_tick(price=3.0)])
    rows = await query.latest(1, 3)
    assert [r.id for r in rows] == [3, 2, 1]


@pytest.mark.asyncio
async def test_latest_orders_by_timestamp_not_arrival(store, query):
    # out-of-order arrivals are stored as-is
    await store.insert_batch([make_tick(price=2.0, offset_s=2), make_tick(price=1.0, offset_s=1)])
    rows = await query.latest(1, 2)
    assert [r.price for r in rows] == [2.0, 1.0]
    assert [r.id for r in rows] == [1, 2]


@pytest.mark.asyncio
async def test_latest_unknown_stock_is_not_found(store, query):
    await store.insert_batch([make_tick(stock_id=1)])
    with pytest.raises(NotFoundError):
        await query.latest(2, 5)


@pytest.mark.asyncio
@pytest.mark.parametrize("stock_id, n", [(0, 5), (-1, 5), (1, 0)])
async def test_latest_rejects_bad_arguments(query, stock_id, n):
    with pytest.raises(ValidationError):
        await query.latest(stock_id, n)


@pytest.mark.asyncio
async def test_range_is_inclusive_and_ascending(store, query):
    await store.insert_batch([make_tick(price=float(i), offset_s=i) for i in range(10)])

    rows = await query.range(1, T0 + timedelta(seconds=2), T0 + timedelta(seconds=5))

    assert [r.price for r in rows] == [2.0, 3.0, 4.0, 5.0]


@pytest.mark.asyncio
async def test_range_with_no_data_is_empty(query):
    assert await query.range(1, T0, T0 + timedelta(hours=1)) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("gap", [timedelta(microseconds=1), timedelta(seconds=1), timedelta(days=365)])
async def test_range_start_after_end_is_rejected(query, gap):
    with pytest.raises(ValidationError):
        await query.range(1, T0 + gap, T0)


@pytest.mark.asyncio
async def test_range_single_instant(store, query):
    await store.insert_batch([make_tick(price=1.0), make_tick(price=2.0, offset_s=1)])
    rows = await query.range(1, T0, T0)
    assert [r.price for r in rows] == [1.0]


@pytest.mark.asyncio
async def test_slow_store_times_out_without_partial_result():
    store = SlowTickStore(delay_s=0.5)
    await store.insert_batch([make_tick()])
    query = QueryTicksUseCase(tick_store=store, default_timeout_s=5.0)

    with pytest.raises(QueryTimeoutError):
        await query.latest(1, 5, timeout_s=0.01)
    with pytest.raises(TimeoutError):
        await query.range(1, T0, T0, timeout_s=0.01)
