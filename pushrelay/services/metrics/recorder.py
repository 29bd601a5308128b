from __future__ import annotations

import dataclasses
import logging

from pushrelay.core.clock import Clock, utc_now
from pushrelay.domain.types import DeviceInfo, Metric, NotificationType
from pushrelay.persistence.stores import MetricStore


logger = logging.getLogger(__name__)


class MetricsRecorder:
    """Best-effort writer for delivery outcome metrics.

    Store failures are logged and swallowed: telemetry must never abort a send or retry.
    """

    def __init__(self, store: MetricStore, *, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def record_metric(self, metric: Metric) -> None:
        if metric.timestamp is None:
            metric = dataclasses.replace(metric, timestamp=self._clock())
        try:
            await self._store.append(metric)
        except Exception as exc:  # noqa: BLE001 - metric writes are best-effort telemetry.
            logger.warning(
                "notification_metric_write_failed notification_id=%s status=%s",
                metric.notification_id,
                metric.status,
                exc_info=exc,
            )
            return
        logger.debug(
            "notification_metric_recorded notification_id=%s type=%s status=%s",
            metric.notification_id,
            metric.type,
            metric.status,
        )

    async def record_sent(
        self,
        user_id: str,
        notification_id: str,
        type: NotificationType,
        *,
        destination_token: str | None = None,
        device_info: DeviceInfo | None = None,
    ) -> None:
        await self.record_metric(
            Metric(
                user_id=user_id,
                notification_id=notification_id,
                type=type,
                status="sent",
                timestamp=self._clock(),
                destination_token=destination_token,
                device_info=device_info,
            )
        )

    async def record_delivered(
        self,
        user_id: str,
        notification_id: str,
        type: NotificationType,
        *,
        response_time_ms: int | None = None,
    ) -> None:
        await self.record_metric(
            Metric(
                user_id=user_id,
                notification_id=notification_id,
                type=type,
                status="delivered",
                timestamp=self._clock(),
                response_time_ms=response_time_ms,
            )
        )

    async def record_clicked(self, user_id: str, notification_id: str, type: NotificationType) -> None:
        await self.record_metric(
            Metric(
                user_id=user_id,
                notification_id=notification_id,
                type=type,
                status="clicked",
                timestamp=self._clock(),
            )
        )

    async def record_failed(
        self,
        user_id: str,
        notification_id: str,
        type: NotificationType,
        *,
        error_code: str,
        error_message: str,
        destination_token: str | None = None,
    ) -> None:
        await self.record_metric(
            Metric(
                user_id=user_id,
                notification_id=notification_id,
                type=type,
                status="failed",
                timestamp=self._clock(),
                error_code=error_code,
                error_message=error_message,
                destination_token=destination_token,
            )
        )
