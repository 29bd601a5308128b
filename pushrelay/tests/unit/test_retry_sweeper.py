from __future__ import annotations

from datetime import timedelta

import pytest

from pushrelay.core.errors import PushSendError
from pushrelay.services.metrics.recorder import MetricsRecorder
from pushrelay.services.retry.backoff import RetryConfig
from pushrelay.services.retry.lease import SWEEPER_LOCK_KEY, acquire_sweeper_lock, release_sweeper_lock
from pushrelay.services.retry.processor import RetryProcessor
from pushrelay.services.retry.sweeper import RetryStats, RetrySweeper, SweepResult
from pushrelay.tests.utils.stores import make_record


def _sweeper(retry_store, metric_store, clock, **kwargs) -> RetrySweeper:
    processor = RetryProcessor(
        retry_store,
        MetricsRecorder(metric_store, clock=clock),
        config=RetryConfig(max_attempts=3),
        delete_on_success=True,
        clock=clock,
    )
    kwargs.setdefault("inter_record_delay_ms", 0)
    return RetrySweeper(retry_store, processor, clock=clock, **kwargs)


async def _send_by_token(token, payload) -> None:  # noqa: ANN001
    if token.startswith("bad"):
        raise PushSendError("http_500", "gateway down")


@pytest.mark.asyncio
async def test_sweep_counts_successes_and_failures(retry_store, metric_store, clock) -> None:
    good = make_record(notification_id="n-good")
    bad = make_record(notification_id="n-bad")
    bad.destination_token = "bad-token"
    await retry_store.enqueue(good)
    await retry_store.enqueue(bad)
    # Not yet due.
    await retry_store.enqueue(make_record(notification_id="n-later", next_retry_at=clock.now + timedelta(minutes=5)))
    # Terminal records are never swept.
    await retry_store.enqueue(make_record(notification_id="n-done", status="failed", attempts=3))

    result = await _sweeper(retry_store, metric_store, clock).process_all_pending_retries(_send_by_token)

    assert result == SweepResult(processed=2, successful=1, failed=1)
    assert result.processed == result.successful + result.failed


@pytest.mark.asyncio
async def test_sweep_isolates_per_record_store_failures(retry_store, metric_store, clock) -> None:
    await retry_store.enqueue(make_record(notification_id="n-1"))
    await retry_store.enqueue(make_record(notification_id="n-2"))
    retry_store.fail_on.add("update")

    sent: list[str] = []

    async def _send(token, payload) -> None:  # noqa: ANN001
        sent.append(token)

    result = await _sweeper(retry_store, metric_store, clock).process_all_pending_retries(_send)
    assert result == SweepResult(processed=2, successful=0, failed=2)
    assert sent == []


@pytest.mark.asyncio
async def test_sweep_fails_open_when_listing_fails(retry_store, metric_store, clock) -> None:
    await retry_store.enqueue(make_record())
    retry_store.fail_on.add("list_due")
    result = await _sweeper(retry_store, metric_store, clock).process_all_pending_retries(_send_by_token)
    assert result == SweepResult(processed=0, successful=0, failed=0)


@pytest.mark.asyncio
async def test_sweep_pauses_between_records(retry_store, metric_store, clock) -> None:
    for index in range(3):
        await retry_store.enqueue(make_record(notification_id=f"n-{index}"))
    pauses: list[float] = []

    async def _sleep(seconds: float) -> None:
        pauses.append(seconds)

    sweeper = _sweeper(retry_store, metric_store, clock, inter_record_delay_ms=100, sleep=_sleep)
    await sweeper.process_all_pending_retries(_send_by_token)
    # No pause after the final record.
    assert pauses == [0.1, 0.1]


@pytest.mark.asyncio
async def test_cleanup_removes_only_old_terminal_records(retry_store, metric_store, clock) -> None:
    old = clock.now - timedelta(days=8)
    recent = clock.now - timedelta(days=2)
    old_failed = await retry_store.enqueue(make_record(status="failed", created_at=old))
    old_success = await retry_store.enqueue(make_record(status="success", created_at=old))
    old_pending = await retry_store.enqueue(make_record(status="pending", created_at=old))
    old_retrying = await retry_store.enqueue(make_record(status="retrying", created_at=old))
    recent_failed = await retry_store.enqueue(make_record(status="failed", created_at=recent))

    deleted = await _sweeper(retry_store, metric_store, clock).cleanup_old_retries(7)

    assert deleted == 2
    assert old_failed not in retry_store.records
    assert old_success not in retry_store.records
    assert {old_pending, old_retrying, recent_failed} <= set(retry_store.records)


@pytest.mark.asyncio
async def test_cleanup_returns_zero_on_store_failure(retry_store, metric_store, clock) -> None:
    retry_store.fail_on.add("delete_created_before")
    assert await _sweeper(retry_store, metric_store, clock).cleanup_old_retries(7) == 0


@pytest.mark.asyncio
async def test_user_retry_stats_group_by_status(retry_store, metric_store, clock) -> None:
    for status in ("pending", "pending", "retrying", "failed"):
        await retry_store.enqueue(make_record(user_id="user-1", status=status))
    await retry_store.enqueue(make_record(user_id="user-2", status="success"))
    sweeper = _sweeper(retry_store, metric_store, clock)

    stats = await sweeper.get_user_retry_stats("user-1")
    assert stats == RetryStats(pending=2, retrying=1, failed=1, success=0)

    retry_store.fail_on.add("list_by_user")
    assert (await sweeper.get_user_retry_stats("user-1")).to_dict() == {
        "pending": 0,
        "retrying": 0,
        "failed": 0,
        "success": 0,
    }


@pytest.mark.asyncio
async def test_run_exclusive_skips_when_lease_held(retry_store, metric_store, clock) -> None:
    await retry_store.enqueue(make_record())
    sweeper = _sweeper(retry_store, metric_store, clock)

    held = await acquire_sweeper_lock()
    assert held is not None
    assert await sweeper.run_exclusive(_send_by_token) is None
    await release_sweeper_lock(held)

    result = await sweeper.run_exclusive(_send_by_token)
    assert result == SweepResult(processed=1, successful=1, failed=0)
    # The lease is released after the sweep.
    again = await acquire_sweeper_lock()
    assert again is not None
    await release_sweeper_lock(again)


@pytest.mark.asyncio
async def test_long_sweep_renews_lease(retry_store, metric_store, clock, fake_lease_redis) -> None:
    for index in range(4):
        await retry_store.enqueue(make_record(notification_id=f"n-{index}"))

    async def _slow_send(token, payload) -> None:  # noqa: ANN001
        clock.advance(seconds=11)
        fake_lease_redis.advance(11)

    lease = await acquire_sweeper_lock(ttl_s=30)
    assert lease is not None
    sweeper = _sweeper(retry_store, metric_store, clock)
    result = await sweeper.process_all_pending_retries(_slow_send, lease=lease)

    assert result == SweepResult(processed=4, successful=4, failed=0)
    # 44s of sending under a 30s TTL: only renewal keeps the lease alive.
    assert await fake_lease_redis.get(SWEEPER_LOCK_KEY) == lease.token
    await release_sweeper_lock(lease)


@pytest.mark.asyncio
async def test_sweep_finishes_after_losing_lease(retry_store, metric_store, clock, fake_lease_redis) -> None:
    for index in range(3):
        await retry_store.enqueue(make_record(notification_id=f"n-{index}"))

    async def _send(token, payload) -> None:  # noqa: ANN001
        clock.advance(seconds=11)
        await fake_lease_redis.set(SWEEPER_LOCK_KEY, "other-sweeper")

    lease = await acquire_sweeper_lock(ttl_s=30)
    assert lease is not None
    sweeper = _sweeper(retry_store, metric_store, clock)
    result = await sweeper.process_all_pending_retries(_send, lease=lease)

    assert result == SweepResult(processed=3, successful=3, failed=0)
    await release_sweeper_lock(lease)
    assert await fake_lease_redis.get(SWEEPER_LOCK_KEY) == "other-sweeper"
