from __future__ import annotations

import pytest

from pushrelay.core.config import Settings
from pushrelay.services.engine import build_engine_from_stores
from pushrelay.tests.utils.stores import make_record
from pushrelay.workers import retry_worker


def test_engine_applies_settings(retry_store, metric_store, clock) -> None:
    settings = Settings(retry_max_attempts=6, retry_base_delay_ms=1000, retry_delete_on_success=False)
    engine = build_engine_from_stores(retry_store, metric_store, settings=settings, clock=clock)
    assert engine.config.max_attempts == 6
    assert engine.config.base_delay_ms == 1000
    assert engine.processor.config is engine.config
    assert engine.clock is clock


@pytest.mark.asyncio
async def test_worker_jobs_use_engine_from_context(retry_store, metric_store, clock) -> None:
    settings = Settings(retry_sweep_inter_record_delay_ms=0)
    engine = build_engine_from_stores(retry_store, metric_store, settings=settings, clock=clock)
    await retry_store.enqueue(make_record())
    ctx = {"engine": engine}

    # The worker sends through the configured transport, which is noop:// under test.
    assert await retry_worker.sweep_retries(ctx) == {"processed": 1, "successful": 1, "failed": 0}
    assert await retry_worker.cleanup_retries(ctx, 7) == 0


def test_worker_settings_register_cron_jobs() -> None:
    names = {job.name for job in retry_worker.WorkerSettings.cron_jobs}
    assert names == {"cron:sweep_retries", "cron:cleanup_retries"}
    assert retry_worker.sweep_retries in retry_worker.WorkerSettings.functions
