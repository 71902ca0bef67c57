# core/usecases/start_simulated_ticks_use_case.py
from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Optional

from core.domain.entities.tick_entity import TickEntity
from core.usecases.ingest_ticks_use_case import IngestTicksUseCase


class StartSimulatedTicksUseCase:
    """
    Demo producer: random-walk prices for a fixed set of stocks.

    Every `interval_s` each stock's price moves by a uniform step in
    [-max_step, +max_step] (floored at 0) and the new sample is submitted
    to the ingestion buffer stamped with the current UTC time.
    """

    def __init__(
        self,
        *,
        ingest_uc: IngestTicksUseCase,
        stock_ids: Iterable[int],
        interval_s: float = 0.1,
        initial_price: float = 100.0,
        max_step: float = 2.0,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger: logging.Logger | None = None,
    ):
        self._ingest = ingest_uc
        self._prices: Dict[int, float] = {int(s): float(initial_price) for s in stock_ids}
        self._interval_s = float(interval_s)
        self._max_step = float(max_step)
        self._rng = rng or random.Random()
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    @property
    def prices(self) -> Dict[int, float]:
        return dict(self._prices)

    def start(self) -> None:
        """Start the simulation loop in background."""
        if self._task is None:
            self._stop.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the simulation loop gracefully."""
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def step(self) -> None:
        """Advance every stock by one sample and submit the ticks."""
        now = self._clock()
        for stock_id, price in self._prices.items():
            price = max(0.0, price + self._rng.uniform(-self._max_step, self._max_step))
            self._prices[stock_id] = price
            await self._ingest.submit(TickEntity(stock_id=stock_id, price=price, ts=now))

    async def _run(self) -> None:
        while not self._stop.is_set():
            try:
                await self.step()
            except Exception as exc:
                self._logger.exception("Simulated tick loop error: %s", exc)

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval_s)
            except asyncio.TimeoutError:
                pass
