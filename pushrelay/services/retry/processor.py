from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable

from pushrelay.core.clock import Clock, utc_now
from pushrelay.core.config import get_settings
from pushrelay.core.errors import StoreError
from pushrelay.domain.types import LastError, NotificationPayload, RetryRecord
from pushrelay.persistence.stores import RetryStore
from pushrelay.services.metrics.recorder import MetricsRecorder
from pushrelay.services.retry.backoff import RetryConfig, next_retry_at


logger = logging.getLogger(__name__)

SendFn = Callable[[str, NotificationPayload], Awaitable[None]]

UNKNOWN_ERROR_CODE = "UNKNOWN_ERROR"
UNKNOWN_ERROR_MESSAGE = "Unknown error occurred"
INTERRUPTED_ERROR_CODE = "ATTEMPT_INTERRUPTED"


def classify_send_error(exc: BaseException) -> tuple[str, str]:
    # Prefer an explicit transport code, then a name, then the exception class.
    code = getattr(exc, "code", None)
    if isinstance(code, (str, int)) and not isinstance(code, bool) and str(code).strip():
        resolved = str(code).strip()
    else:
        name = getattr(exc, "name", None)
        if isinstance(name, str) and name.strip():
            resolved = name.strip()
        else:
            resolved = type(exc).__name__ or UNKNOWN_ERROR_CODE
    message = str(exc).strip() or UNKNOWN_ERROR_MESSAGE
    return resolved, message


class RetryProcessor:
    """Drives one retry record through a single delivery attempt.

    State machine: ``pending -> retrying`` before the send, then ``retrying -> success``,
    ``retrying -> pending`` (rescheduled) or ``retrying -> failed`` (attempts exhausted).
    The ``retrying`` transition is persisted before sending so a crash mid-send stays visible.
    Store failures raise ``StoreError``; callers isolate them per record.
    """

    def __init__(
        self,
        store: RetryStore,
        recorder: MetricsRecorder,
        *,
        config: RetryConfig | None = None,
        delete_on_success: bool | None = None,
        clock: Clock = utc_now,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._config = config or RetryConfig.from_settings()
        self._delete_on_success = (
            get_settings().retry_delete_on_success if delete_on_success is None else delete_on_success
        )
        self._clock = clock
        self._timer = timer

    @property
    def config(self) -> RetryConfig:
        return self._config

    async def process_retry(self, record: RetryRecord, send_fn: SendFn) -> bool:
        record_id = record.id
        if record_id is None:
            logger.error("retry_record_missing_id notification_id=%s", record.notification_id)
            return False
        if record.attempts >= record.max_attempts:
            await self._finalize_interrupted(record_id, record)
            return False

        attempts = record.attempts + 1
        await self._store.update(record_id, {"status": "retrying", "attempts": attempts})
        record.status = "retrying"
        record.attempts = attempts

        started = self._timer()
        try:
            await send_fn(record.destination_token, record.payload)
        except Exception as exc:  # noqa: BLE001 - every send failure is classified onto the record.
            await self._handle_failure(record_id, record, exc)
            return False
        response_time_ms = max(0, int(round((self._timer() - started) * 1000)))
        await self._handle_success(record_id, record, response_time_ms)
        return True

    async def _handle_success(self, record_id: str, record: RetryRecord, response_time_ms: int) -> None:
        status_saved = True
        try:
            await self._store.update(record_id, {"status": "success"})
            record.status = "success"
        except StoreError as exc:
            # Delivered but still marked retrying; the record is dropped below instead.
            status_saved = False
            logger.warning("retry_success_update_failed retry_id=%s", record_id, exc_info=exc)
        await self._recorder.record_delivered(
            record.user_id,
            record.notification_id,
            record.type,
            response_time_ms=response_time_ms,
        )
        if self._delete_on_success or not status_saved:
            try:
                await self._store.delete(record_id)
            except StoreError as exc:
                # Cleanup removes the terminal record later.
                logger.warning("retry_success_delete_failed retry_id=%s", record_id, exc_info=exc)
        logger.info(
            "retry_delivered notification_id=%s attempts=%s response_time_ms=%s",
            record.notification_id,
            record.attempts,
            response_time_ms,
        )

    async def _handle_failure(self, record_id: str, record: RetryRecord, exc: Exception) -> None:
        code, message = classify_send_error(exc)
        now = self._clock()
        last_error = LastError(code=code, message=message, timestamp=now)
        await self._recorder.record_failed(
            record.user_id,
            record.notification_id,
            record.type,
            error_code=code,
            error_message=message,
            destination_token=record.destination_token,
        )
        if record.attempts >= record.max_attempts:
            await self._store.update(
                record_id,
                {"status": "failed", "attempts": record.attempts, "last_error": last_error},
            )
            record.status = "failed"
            record.last_error = last_error
            logger.error(
                "retry_max_attempts_exceeded notification_id=%s attempts=%s error_code=%s",
                record.notification_id,
                record.attempts,
                code,
            )
            return

        retry_at = next_retry_at(now, record.attempts, self._config)
        await self._store.update(
            record_id,
            {
                "status": "pending",
                "attempts": record.attempts,
                "next_retry_at": retry_at,
                "last_error": last_error,
            },
        )
        record.status = "pending"
        record.next_retry_at = retry_at
        record.last_error = last_error
        logger.warning(
            "retry_scheduled notification_id=%s attempts=%s next_retry_at=%s error_code=%s",
            record.notification_id,
            record.attempts,
            retry_at.isoformat(),
            code,
        )

    async def _finalize_interrupted(self, record_id: str, record: RetryRecord) -> None:
        # A previous sweep claimed the final attempt and never recorded an outcome.
        last_error = LastError(
            code=INTERRUPTED_ERROR_CODE,
            message="Final attempt ended without a recorded outcome",
            timestamp=self._clock(),
        )
        await self._store.update(
            record_id,
            {"status": "failed", "attempts": record.max_attempts, "last_error": last_error},
        )
        record.status = "failed"
        record.attempts = record.max_attempts
        record.last_error = last_error
        logger.warning(
            "retry_attempt_interrupted notification_id=%s attempts=%s",
            record.notification_id,
            record.attempts,
        )
