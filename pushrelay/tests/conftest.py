from __future__ import annotations

import pytest

from pushrelay.core.config import get_settings
from pushrelay.services.retry import lease as lease_module
from pushrelay.tests.utils.stores import FakeClock, FakeRedis, InMemoryMetricStore, InMemoryRetryStore


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    # Keep tests off real Redis/Postgres and rebuild settings from the patched env.
    monkeypatch.setenv("PUSH_GATEWAY_URL", "noop://test")
    monkeypatch.setenv("RETRY_SWEEP_INTER_RECORD_DELAY_MS", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def fake_lease_redis(monkeypatch) -> FakeRedis:
    redis = FakeRedis()

    async def _redis():  # type: ignore[override]
        return redis

    monkeypatch.setattr(lease_module, "get_lease_redis", _redis)
    return redis


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def retry_store() -> InMemoryRetryStore:
    return InMemoryRetryStore()


@pytest.fixture
def metric_store() -> InMemoryMetricStore:
    return InMemoryMetricStore()
