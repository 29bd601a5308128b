from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from pushrelay.core.errors import StoreError
from pushrelay.domain.models import Base
from pushrelay.domain.types import DUE_RETRY_STATUSES, TERMINAL_RETRY_STATUSES, DeviceInfo, LastError
from pushrelay.persistence.repos.metrics import SqlMetricStore
from pushrelay.persistence.repos.retries import SqlRetryStore
from pushrelay.persistence.stores import SYSTEM_SCOPE
from pushrelay.tests.utils.stores import make_metric, make_record


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'pushrelay.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.mark.asyncio
async def test_retry_store_round_trip_and_due_query(session_factory, clock) -> None:
    store = SqlRetryStore(session_factory)
    due_id = await store.enqueue(make_record(notification_id="n-due"))
    await store.enqueue(make_record(notification_id="n-later", next_retry_at=clock.now + timedelta(minutes=1)))
    await store.enqueue(make_record(notification_id="n-done", status="success"))

    due = await store.list_due(DUE_RETRY_STATUSES, clock.now)
    assert [record.id for record in due] == [due_id]
    record = due[0]
    assert record.payload.data == {"task_id": "t-1"}
    assert record.next_retry_at == clock.now
    assert record.next_retry_at.tzinfo is not None


@pytest.mark.asyncio
async def test_retry_store_update_and_delete(session_factory, clock) -> None:
    store = SqlRetryStore(session_factory)
    record_id = await store.enqueue(make_record(user_id="user-9"))
    error = LastError(code="TIMEOUT", message="slow", timestamp=clock.now)
    await store.update(
        record_id,
        {"status": "pending", "attempts": 1, "next_retry_at": clock.now + timedelta(seconds=5), "last_error": error},
    )
    (record,) = await store.list_by_user("user-9")
    assert record.attempts == 1
    assert record.last_error == error
    assert await store.list_due(DUE_RETRY_STATUSES, clock.now) == []

    await store.delete(record_id)
    assert await store.list_by_user("user-9") == []


@pytest.mark.asyncio
async def test_retry_store_deletes_old_terminal_records(session_factory, clock) -> None:
    store = SqlRetryStore(session_factory)
    old = clock.now - timedelta(days=10)
    await store.enqueue(make_record(status="failed", created_at=old))
    await store.enqueue(make_record(status="success", created_at=old))
    await store.enqueue(make_record(status="pending", created_at=old))
    deleted = await store.delete_created_before(TERMINAL_RETRY_STATUSES, clock.now - timedelta(days=7))
    assert deleted == 2
    remaining = await store.list_by_user("user-1")
    assert [record.status for record in remaining] == ["pending"]


@pytest.mark.asyncio
async def test_metric_store_window_scope_and_limit(session_factory, clock) -> None:
    store = SqlMetricStore(session_factory)
    await store.append(make_metric("sent", user_id="user-1", timestamp=clock.now - timedelta(hours=3)))
    await store.append(make_metric("delivered", user_id="user-1", timestamp=clock.now - timedelta(hours=1)))
    await store.append(make_metric("sent", user_id="user-2", timestamp=clock.now - timedelta(hours=2)))
    await store.append(make_metric("sent", user_id="user-1", timestamp=clock.now - timedelta(days=40)))

    since = clock.now - timedelta(days=30)
    user_rows = await store.query_window("user-1", since, 1000)
    assert [row.status for row in user_rows] == ["delivered", "sent"]
    system_rows = await store.query_window(SYSTEM_SCOPE, since, 2)
    assert [row.user_id for row in system_rows] == ["user-1", "user-2"]


@pytest.mark.asyncio
async def test_metric_store_keeps_device_info(session_factory, clock) -> None:
    store = SqlMetricStore(session_factory)
    metric = make_metric("sent", timestamp=clock.now)
    device = DeviceInfo(platform="ios", user_agent="App/1.0")

    await store.append(replace(metric, device_info=device))
    (row,) = await store.query_window("user-1", clock.now - timedelta(days=1), 10)
    assert row.device_info == device
    assert row.timestamp == clock.now


@pytest.mark.asyncio
async def test_backend_errors_become_store_errors(tmp_path, clock) -> None:
    # No tables created: every query fails at the database.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        with pytest.raises(StoreError):
            await SqlRetryStore(factory).list_due(DUE_RETRY_STATUSES, clock.now)
        with pytest.raises(StoreError):
            await SqlMetricStore(factory).query_window(SYSTEM_SCOPE, clock.now, 10)
    finally:
        await engine.dispose()
