from __future__ import annotations

from collections import Counter
from datetime import timedelta
import logging
from typing import Iterable

from pushrelay.core.clock import Clock, utc_now
from pushrelay.core.config import get_settings
from pushrelay.core.errors import StoreError
from pushrelay.domain.types import AnalyticsSnapshot, Metric
from pushrelay.persistence.stores import SYSTEM_SCOPE, MetricStore


logger = logging.getLogger(__name__)


def _percentage(numerator: int, denominator: int) -> float:
    # Zero denominators report 0; repeat clicks and unpaired deliveries cap at 100.
    if denominator <= 0:
        return 0.0
    return min(round(numerator / denominator * 100, 2), 100.0)


def compute_analytics(metrics: Iterable[Metric]) -> AnalyticsSnapshot:
    """Reduce a window of delivery metrics into one snapshot.

    Counts partition metrics by status; ``type_breakdown`` counts every metric regardless
    of status. Rates are percentages rounded to 2 places and the average response time is
    rounded to whole milliseconds over positive samples only.
    """
    status_counts: Counter[str] = Counter()
    error_breakdown: Counter[str] = Counter()
    type_breakdown: Counter[str] = Counter()
    response_times: list[int] = []

    for metric in metrics:
        status_counts[metric.status] += 1
        type_breakdown[metric.type] += 1
        if metric.status == "failed" and metric.error_code:
            error_breakdown[metric.error_code] += 1
        if metric.response_time_ms is not None and metric.response_time_ms > 0:
            response_times.append(metric.response_time_ms)

    total_sent = status_counts["sent"]
    total_delivered = status_counts["delivered"]
    total_clicked = status_counts["clicked"]
    total_failed = status_counts["failed"]
    average = round(sum(response_times) / len(response_times)) if response_times else 0

    return AnalyticsSnapshot(
        total_sent=total_sent,
        total_delivered=total_delivered,
        total_clicked=total_clicked,
        total_failed=total_failed,
        delivery_rate=_percentage(total_delivered, total_sent),
        click_rate=_percentage(total_clicked, total_delivered),
        average_response_time=int(average),
        error_breakdown=dict(error_breakdown),
        type_breakdown=dict(type_breakdown),
    )


class AnalyticsService:
    # Windowed reads over the metric store; query failures yield an empty snapshot.

    def __init__(
        self,
        store: MetricStore,
        *,
        clock: Clock = utc_now,
        user_limit: int | None = None,
        system_limit: int | None = None,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._clock = clock
        self._user_limit = user_limit or settings.analytics_user_query_limit
        self._system_limit = system_limit or settings.analytics_system_query_limit

    async def get_user_analytics(self, user_id: str, days: int | None = None) -> AnalyticsSnapshot:
        return await self._window_snapshot(user_id, days, self._user_limit)

    async def get_system_analytics(self, days: int | None = None) -> AnalyticsSnapshot:
        return await self._window_snapshot(SYSTEM_SCOPE, days, self._system_limit)

    async def _window_snapshot(self, scope: str, days: int | None, limit: int) -> AnalyticsSnapshot:
        window_days = get_settings().analytics_window_days if days is None else int(days)
        if window_days <= 0:
            raise ValueError("days must be positive")
        since = self._clock() - timedelta(days=window_days)
        try:
            metrics = await self._store.query_window(scope, since, limit)
        except StoreError as exc:
            logger.warning("analytics_query_failed scope=%s days=%s", scope, window_days, exc_info=exc)
            return AnalyticsSnapshot.empty()
        return compute_analytics(metrics)
