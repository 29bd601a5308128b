from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
import logging
from typing import Any, Awaitable, Callable

from pushrelay.core.clock import Clock, utc_now
from pushrelay.core.config import get_settings
from pushrelay.core.errors import StoreError
from pushrelay.domain.types import DUE_RETRY_STATUSES, TERMINAL_RETRY_STATUSES, RetryRecord
from pushrelay.persistence.stores import RetryStore
from pushrelay.services.retry.lease import (
    SweeperLock,
    acquire_sweeper_lock,
    release_sweeper_lock,
    renew_sweeper_lock,
)
from pushrelay.services.retry.processor import RetryProcessor, SendFn


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    processed: int
    successful: int
    failed: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class RetryStats:
    pending: int = 0
    retrying: int = 0
    failed: int = 0
    success: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class RetrySweeper:
    """Periodic batch work over the retry store: sweeping due records, cleanup and stats.

    Reads fail open (empty results) and each record is processed in isolation so one bad
    record never aborts the batch.
    """

    def __init__(
        self,
        store: RetryStore,
        processor: RetryProcessor,
        *,
        inter_record_delay_ms: int | None = None,
        clock: Clock = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        lock_ttl_s: int | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._processor = processor
        self._inter_record_delay_ms = max(
            0,
            int(
                settings.retry_sweep_inter_record_delay_ms
                if inter_record_delay_ms is None
                else inter_record_delay_ms
            ),
        )
        self._clock = clock
        self._sleep = sleep
        self._lock_ttl_s = lock_ttl_s

    async def list_due_retries(self) -> list[RetryRecord]:
        try:
            return await self._store.list_due(DUE_RETRY_STATUSES, self._clock())
        except StoreError as exc:
            logger.error("retry_due_query_failed", exc_info=exc)
            return []

    async def process_all_pending_retries(
        self,
        send_fn: SendFn,
        *,
        lease: SweeperLock | None = None,
    ) -> SweepResult:
        records = await self.list_due_retries()
        successful = 0
        failed = 0
        renewed_at = self._clock()
        for index, record in enumerate(records):
            if index:
                # Spread sends to bound burst load on the push channel.
                if self._inter_record_delay_ms:
                    await self._sleep(self._inter_record_delay_ms / 1000)
                if lease is not None and self._renewal_due(lease, renewed_at):
                    renewed_at = self._clock()
                    if not await renew_sweeper_lock(lease):
                        logger.warning("retry_sweep_lease_lost remaining=%s", len(records) - index)
                        lease = None
            try:
                delivered = await self._processor.process_retry(record, send_fn)
            except Exception:  # noqa: BLE001 - isolate store failures to the current record.
                logger.exception(
                    "retry_record_processing_failed retry_id=%s notification_id=%s",
                    record.id,
                    record.notification_id,
                )
                delivered = False
            if delivered:
                successful += 1
            else:
                failed += 1

        result = SweepResult(processed=len(records), successful=successful, failed=failed)
        if records:
            logger.info(
                "retry_sweep_completed processed=%s successful=%s failed=%s",
                result.processed,
                result.successful,
                result.failed,
            )
        return result

    def _renewal_due(self, lease: SweeperLock, renewed_at: datetime) -> bool:
        # Renew once a third of the TTL has elapsed.
        return self._clock() - renewed_at >= timedelta(seconds=lease.ttl_s / 3)

    async def run_exclusive(self, send_fn: SendFn) -> SweepResult | None:
        """Run one sweep under the single-sweeper lease; ``None`` when another sweep holds it."""
        lock = await acquire_sweeper_lock(ttl_s=self._lock_ttl_s)
        if lock is None:
            logger.info("retry_sweep_skipped reason=lease_held")
            return None
        try:
            return await self.process_all_pending_retries(send_fn, lease=lock)
        finally:
            await release_sweeper_lock(lock)

    async def cleanup_old_retries(self, days_old: int | None = None) -> int:
        days = get_settings().retry_cleanup_days_old if days_old is None else int(days_old)
        if days < 0:
            raise ValueError("days_old must be non-negative")
        cutoff = self._clock() - timedelta(days=days)
        try:
            deleted = await self._store.delete_created_before(TERMINAL_RETRY_STATUSES, cutoff)
        except StoreError as exc:
            logger.error("retry_cleanup_failed days_old=%s", days, exc_info=exc)
            return 0
        logger.info("retry_cleanup_completed deleted=%s days_old=%s", deleted, days)
        return deleted

    async def get_user_retry_stats(self, user_id: str) -> RetryStats:
        try:
            records = await self._store.list_by_user(user_id)
        except StoreError as exc:
            logger.error("retry_stats_query_failed user_id=%s", user_id, exc_info=exc)
            return RetryStats()
        counts = {"pending": 0, "retrying": 0, "failed": 0, "success": 0}
        for record in records:
            if record.status in counts:
                counts[record.status] += 1
        return RetryStats(**counts)
