from __future__ import annotations

from datetime import timedelta

import pytest

from core.domain.errors import StoreError
from tests.helpers.fakes import T0, make_tick


@pytest.mark.asyncio
async def test_ids_continue_across_batches(store):
    first = await store.insert_batch([make_tick(), make_tick(offset_s=1)])
    second = await store.insert_batch([make_tick(stock_id=2)])

    assert (first.first_id, first.last_id) == (1, 2)
    assert (second.first_id, second.last_id) == (3, 3)


@pytest.mark.asyncio
async def test_stocks_are_kept_apart(store):
    await store.insert_batch([make_tick(stock_id=1, price=1.0), make_tick(stock_id=2, price=2.0)])

    assert [r.price for r in await store.select_latest(1, 10)] == [1.0]
    assert [r.price for r in await store.select_latest(2, 10)] == [2.0]
    assert await store.select_latest(3, 10) == []


@pytest.mark.asyncio
async def test_range_accepts_naive_bounds(store):
    await store.insert_batch([make_tick(offset_s=i) for i in range(3)])
    naive_start = (T0 + timedelta(seconds=1)).replace(tzinfo=None)
    naive_end = (T0 + timedelta(seconds=2)).replace(tzinfo=None)

    rows = await store.select_range(1, naive_start, naive_end)
    assert len(rows) == 2


@pytest.mark.asyncio
async def test_empty_insert_is_a_permanent_error(store):
    with pytest.raises(StoreError) as info:
        await store.insert_batch([])
    assert not info.value.transient


@pytest.mark.asyncio
async def test_out_of_order_inserts_are_read_back_in_time_order(store):
    await store.insert_batch([make_tick(price=3.0, offset_s=3), make_tick(price=1.0, offset_s=1)])
    await store.insert_batch([make_tick(price=2.0, offset_s=2), make_tick(price=1.5, offset_s=1)])

    latest = await store.select_latest(1, 3)
    assert [r.price for r in latest] == [3.0, 2.0, 1.5]

    span = await store.select_range(1, T0 + timedelta(seconds=1), T0 + timedelta(seconds=2))
    assert [r.price for r in span] == [1.0, 1.5, 2.0]
    assert [r.id for r in span] == [2, 4, 3]
    assert await store.select_range(1, T0, T0 + timedelta(milliseconds=999)) == []
