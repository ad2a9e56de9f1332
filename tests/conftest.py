from __future__ import annotations

import pytest

from backend.cache_store import CacheStore
from backend.catalog_client import CatalogClient
from backend.record_store import JsonRecordStore
from backend.resolution_engine import ResolutionEngine
from backend.trending import TrendApproximator
from catalog_fakes import FakeSession, OmdbRouter


@pytest.fixture()
def omdb_router() -> OmdbRouter:
    return OmdbRouter()


@pytest.fixture()
def fake_session(omdb_router: OmdbRouter) -> FakeSession:
    return FakeSession(router=omdb_router)


@pytest.fixture()
def catalog_client(fake_session: FakeSession) -> CatalogClient:
    return CatalogClient(api_key="test-key", base_url="https://omdb.test/", max_concurrency=4, session=fake_session)


@pytest.fixture()
def clock() -> list[float]:
    return [1_000_000.0]


@pytest.fixture()
def engine(catalog_client: CatalogClient, clock: list[float]) -> ResolutionEngine:
    return ResolutionEngine(
        cache=CacheStore(None, clock=lambda: clock[0]),
        store=JsonRecordStore(None, clock=lambda: clock[0]),
        client=catalog_client,
        trend=TrendApproximator(catalog_client, year_provider=lambda: 2024),
        clock=lambda: clock[0],
    )
