from __future__ import annotations

import logging
from typing import Any, Mapping

from pushrelay.core.clock import Clock, utc_now
from pushrelay.domain.types import (
    NotificationPayload,
    RetryRecord,
    parse_notification_payload,
    parse_notification_type,
)
from pushrelay.persistence.stores import RetryStore
from pushrelay.services.retry.backoff import RetryConfig


logger = logging.getLogger(__name__)


async def enqueue_retryable_notification(
    store: RetryStore,
    *,
    user_id: str,
    notification_id: str,
    type: str,
    payload: NotificationPayload | Mapping[str, Any],
    destination_token: str,
    max_attempts: int | None = None,
    config: RetryConfig | None = None,
    clock: Clock = utc_now,
) -> str:
    """Persist a retry-capable notification that the next sweep will attempt immediately.

    Store failures propagate so the producer knows the notification is not retry-capable.
    """
    config = config or RetryConfig.from_settings()
    resolved_max = config.max_attempts if max_attempts is None else int(max_attempts)
    if resolved_max <= 0:
        raise ValueError("max_attempts must be positive")
    if not destination_token:
        raise ValueError("destination_token must be non-empty")
    now = clock()
    record = RetryRecord(
        user_id=user_id,
        notification_id=notification_id,
        type=parse_notification_type(type),
        payload=parse_notification_payload(payload),
        destination_token=destination_token,
        attempts=0,
        max_attempts=resolved_max,
        next_retry_at=now,
        created_at=now,
        status="pending",
    )
    record_id = await store.enqueue(record)
    logger.info(
        "retryable_notification_enqueued notification_id=%s user_id=%s retry_id=%s",
        notification_id,
        user_id,
        record_id,
    )
    return record_id
