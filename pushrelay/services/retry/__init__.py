from __future__ import annotations

# Re-export retry services for centralized imports.

from pushrelay.services.retry.backoff import DEFAULT_RETRY_CONFIG, RetryConfig, next_delay_ms, next_retry_at
from pushrelay.services.retry.processor import RetryProcessor, SendFn, classify_send_error
from pushrelay.services.retry.queue import enqueue_retryable_notification
from pushrelay.services.retry.sweeper import RetryStats, RetrySweeper, SweepResult

__all__ = [
    "DEFAULT_RETRY_CONFIG",
    "RetryConfig",
    "next_delay_ms",
    "next_retry_at",
    "RetryProcessor",
    "SendFn",
    "classify_send_error",
    "enqueue_retryable_notification",
    "RetryStats",
    "RetrySweeper",
    "SweepResult",
]
