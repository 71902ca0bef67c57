from __future__ import annotations

import asyncio
import random

import pytest

from core.usecases.ingest_ticks_use_case import IngestTicksUseCase
from core.usecases.start_simulated_ticks_use_case import StartSimulatedTicksUseCase
from tests.helpers.fakes import T0


@pytest.mark.asyncio
async def test_step_submits_one_tick_per_stock(writer, store, query):
    buffer = IngestTicksUseCase(writer=writer)
    sim = StartSimulatedTicksUseCase(
        ingest_uc=buffer,
        stock_ids=[1, 2, 3],
        initial_price=100.0,
        max_step=2.0,
        rng=random.Random(7),
        clock=lambda: T0,
    )

    await sim.step()
    await buffer.flush()

    for stock_id in (1, 2, 3):
        (row,) = await query.latest(stock_id, 5)
        assert row.ts == T0
        assert 98.0 <= row.price <= 102.0
        assert row.price == pytest.approx(sim.prices[stock_id])


@pytest.mark.asyncio
async def test_price_never_goes_negative(writer, store, query):
    buffer = IngestTicksUseCase(writer=writer, max_batch_size=1000)
    sim = StartSimulatedTicksUseCase(
        ingest_uc=buffer,
        stock_ids=[1],
        initial_price=0.5,
        max_step=2.0,
        rng=random.Random(1),
        clock=lambda: T0,
    )

    for _ in range(50):
        await sim.step()
    await buffer.flush()

    rows = await query.latest(1, 100)
    assert len(rows) == 50
    assert all(r.price >= 0.0 for r in rows)


@pytest.mark.asyncio
async def test_background_loop_starts_and_stops(writer, store):
    buffer = IngestTicksUseCase(writer=writer, max_batch_size=1000)
    sim = StartSimulatedTicksUseCase(ingest_uc=buffer, stock_ids=[1, 2], interval_s=0.01)

    sim.start()
    await asyncio.sleep(0.1)
    await sim.stop()

    submitted = buffer.stats()["submitted"]
    assert submitted >= 2
    assert submitted % 2 == 0

    await asyncio.sleep(0.03)
    assert buffer.stats()["submitted"] == submitted
