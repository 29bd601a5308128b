from __future__ import annotations

import logging

import pytest

from pushrelay.domain.types import DeviceInfo, Metric
from pushrelay.services.metrics.recorder import MetricsRecorder


@pytest.mark.asyncio
async def test_wrappers_stamp_status_and_timestamp(metric_store, clock) -> None:
    recorder = MetricsRecorder(metric_store, clock=clock)
    device = DeviceInfo(platform="web", user_agent="Mozilla/5.0")
    await recorder.record_sent("user-1", "n-1", "task_assigned", destination_token="tok", device_info=device)
    await recorder.record_delivered("user-1", "n-1", "task_assigned", response_time_ms=120)
    await recorder.record_clicked("user-1", "n-1", "task_assigned")
    await recorder.record_failed(
        "user-1",
        "n-2",
        "mention",
        error_code="TIMEOUT",
        error_message="slow gateway",
        destination_token="tok",
    )

    assert [metric.status for metric in metric_store.metrics] == ["sent", "delivered", "clicked", "failed"]
    assert all(metric.timestamp == clock.now for metric in metric_store.metrics)
    sent, delivered, _clicked, failed = metric_store.metrics
    assert sent.device_info == device
    assert sent.destination_token == "tok"
    assert delivered.response_time_ms == 120
    assert (failed.error_code, failed.error_message) == ("TIMEOUT", "slow gateway")


@pytest.mark.asyncio
async def test_record_metric_fills_missing_timestamp(metric_store, clock) -> None:
    recorder = MetricsRecorder(metric_store, clock=clock)
    await recorder.record_metric(Metric(user_id="u", notification_id="n", type="system", status="sent"))
    assert metric_store.metrics[0].timestamp == clock.now


@pytest.mark.asyncio
async def test_store_failures_are_logged_not_raised(metric_store, clock, caplog) -> None:
    metric_store.fail_on.add("append")
    recorder = MetricsRecorder(metric_store, clock=clock)
    with caplog.at_level(logging.WARNING, logger="pushrelay.services.metrics.recorder"):
        await recorder.record_failed("u", "n", "system", error_code="X", error_message="boom")
    assert metric_store.metrics == []
    assert any("notification_metric_write_failed" in message for message in caplog.messages)
