from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import httpx

from core.domain.entities.tick_entity import PersistedTickEntity, TickEntity


class TickIngestHttpClient:
    """
    Minimal client for remote producers and readers of api-stock-ticks.

    Uses the /ticks endpoints; HTTP errors surface as httpx.HTTPStatusError
    (422 validation, 404 no data, 503 store failure, 504 query timeout).
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = str(base_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(timeout_s, connect=5.0),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def submit_tick(self, tick: TickEntity) -> Dict[str, Any]:
        r = await self._client.post("/ticks", json=_tick_payload(tick))
        r.raise_for_status()
        return r.json()

    async def submit_ticks(self, ticks: Iterable[TickEntity]) -> Dict[str, Any]:
        payload = {"ticks": [_tick_payload(t) for t in ticks]}
        r = await self._client.post("/ticks/batch", json=payload)
        r.raise_for_status()
        return r.json()

    async def flush(self) -> Dict[str, Any]:
        r = await self._client.post("/ticks/flush")
        r.raise_for_status()
        return r.json()

    async def latest(self, stock_id: int, n: int = 20) -> List[PersistedTickEntity]:
        r = await self._client.get(f"/ticks/{int(stock_id)}/latest", params={"n": int(n)})
        r.raise_for_status()
        return [PersistedTickEntity.model_validate(x) for x in r.json()]

    async def range(self, stock_id: int, start: datetime, end: datetime) -> List[PersistedTickEntity]:
        params = {"start": start.isoformat(), "end": end.isoformat()}
        r = await self._client.get(f"/ticks/{int(stock_id)}/range", params=params)
        r.raise_for_status()
        return [PersistedTickEntity.model_validate(x) for x in r.json()]


def _tick_payload(tick: TickEntity) -> Dict[str, Any]:
    return {
        "stock_id": int(tick.stock_id),
        "price": float(tick.price),
        "ts": tick.ts.isoformat(),
    }
