from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from pokerroom_backend.api.deps import get_table_service
from pokerroom_backend.config import Settings
from pokerroom_backend.engine.service import TableService
from pokerroom_backend.main import app
from pokerroom_backend.repo.in_memory import InMemoryTableRepository

from .test_utils import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(clock: FakeClock) -> TableService:
    return TableService(InMemoryTableRepository(), settings=Settings(), clock=clock)


@pytest.fixture
def client(service: TableService) -> Iterator[TestClient]:
    app.dependency_overrides[get_table_service] = lambda: service
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()
