from __future__ import annotations

import pytest

from adapters.external.database.tick_store_repository_memory import TickStoreRepositoryMemory
from core.usecases.query_ticks_use_case import QueryTicksUseCase
from core.usecases.write_batch_use_case import WriteBatchUseCase
from tests.helpers.fakes import RecordingSleep


@pytest.fixture
def store() -> TickStoreRepositoryMemory:
    return TickStoreRepositoryMemory()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def writer(store, sleep) -> WriteBatchUseCase:
    return WriteBatchUseCase(tick_store=store, sleep=sleep)


@pytest.fixture
def query(store) -> QueryTicksUseCase:
    return QueryTicksUseCase(tick_store=store, default_timeout_s=2.0)
