from __future__ import annotations

from fastapi import Request

from core.usecases.ingest_ticks_use_case import IngestTicksUseCase
from core.usecases.query_ticks_use_case import QueryTicksUseCase


def get_ingest_uc(request: Request) -> IngestTicksUseCase:
    return request.app.state.supervisor.ingest


def get_query_uc(request: Request) -> QueryTicksUseCase:
    return request.app.state.supervisor.query
