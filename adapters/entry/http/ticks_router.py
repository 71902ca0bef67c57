from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from core.domain.errors import NotFoundError, QueryTimeoutError, StoreError, ValidationError, WriteError
from core.usecases.ingest_ticks_use_case import IngestTicksUseCase
from core.usecases.query_ticks_use_case import QueryTicksUseCase

from .deps import get_ingest_uc, get_query_uc
from .dtos.tick_dtos import AcceptedOutDTO, TickBatchInDTO, TickInDTO, TickOutDTO, WriteResultOutDTO

router = APIRouter(prefix="/ticks", tags=["ticks"])


@router.post("", response_model=AcceptedOutDTO, status_code=202)
async def submit_tick(
    dto: TickInDTO,
    uc: IngestTicksUseCase = Depends(get_ingest_uc),
) -> AcceptedOutDTO:
    """
    Accept one tick into the ingestion buffer.

    202 means buffered, not yet persisted: the tick becomes visible to queries
    once its batch is flushed.
    """
    try:
        await uc.submit(dto.to_entity())
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return AcceptedOutDTO(accepted=1)


@router.post("/batch", response_model=AcceptedOutDTO, status_code=202)
async def submit_ticks(
    dto: TickBatchInDTO,
    uc: IngestTicksUseCase = Depends(get_ingest_uc),
) -> AcceptedOutDTO:
    """
    Accept several ticks in order. One invalid tick rejects the whole request.
    """
    try:
        accepted = await uc.submit_many([t.to_entity() for t in dto.ticks])
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return AcceptedOutDTO(accepted=accepted)


@router.post("/flush", response_model=WriteResultOutDTO)
async def flush_ticks(uc: IngestTicksUseCase = Depends(get_ingest_uc)) -> WriteResultOutDTO:
    """
    Force the open batch out and wait until it is persisted.
    """
    try:
        result = await uc.flush()
    except WriteError as exc:
        raise HTTPException(status_code=503, detail=str(exc))

    if result is None:
        return WriteResultOutDTO(count=0)
    return WriteResultOutDTO(
        count=result.count,
        first_id=result.id_range.first_id if result.id_range else None,
        last_id=result.id_range.last_id if result.id_range else None,
        attempts=result.attempts,
    )


@router.get("/{stock_id}/latest", response_model=List[TickOutDTO])
async def latest_ticks(
    stock_id: int,
    n: int = Query(20, ge=1, le=5000),
    uc: QueryTicksUseCase = Depends(get_query_uc),
) -> List[TickOutDTO]:
    """
    Most recent ticks for a stock, newest first.
    """
    try:
        rows = await uc.latest(stock_id, n)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except QueryTimeoutError as exc:
        raise HTTPException(status_code=504, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return [TickOutDTO.model_validate(r.model_dump()) for r in rows]


@router.get("/{stock_id}/range", response_model=List[TickOutDTO])
async def range_ticks(
    stock_id: int,
    start: datetime = Query(..., description="Inclusive lower bound (ISO-8601)"),
    end: datetime = Query(..., description="Inclusive upper bound (ISO-8601)"),
    uc: QueryTicksUseCase = Depends(get_query_uc),
) -> List[TickOutDTO]:
    """
    Ticks for a stock with start <= ts <= end, oldest first.
    """
    try:
        rows = await uc.range(stock_id, start, end)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except QueryTimeoutError as exc:
        raise HTTPException(status_code=504, detail=str(exc))
    except StoreError as exc:
        raise HTTPException(status_code=503, detail=str(exc))
    return [TickOutDTO.model_validate(r.model_dump()) for r in rows]
