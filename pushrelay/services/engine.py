from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pushrelay.core.clock import Clock, utc_now
from pushrelay.core.config import Settings, get_settings
from pushrelay.persistence.db import get_sessionmaker
from pushrelay.persistence.repos.metrics import SqlMetricStore
from pushrelay.persistence.repos.retries import SqlRetryStore
from pushrelay.persistence.stores import MetricStore, RetryStore
from pushrelay.services.analytics.aggregation import AnalyticsService
from pushrelay.services.metrics.recorder import MetricsRecorder
from pushrelay.services.retry.backoff import RetryConfig
from pushrelay.services.retry.processor import RetryProcessor
from pushrelay.services.retry.sweeper import RetrySweeper


@dataclass(frozen=True)
class ReliabilityEngine:
    # Bundle the wired components so the API, worker and scripts share one construction path.
    retry_store: RetryStore
    metric_store: MetricStore
    recorder: MetricsRecorder
    processor: RetryProcessor
    sweeper: RetrySweeper
    analytics: AnalyticsService
    config: RetryConfig
    clock: Clock = utc_now


def build_engine_from_stores(
    retry_store: RetryStore,
    metric_store: MetricStore,
    *,
    settings: Settings | None = None,
    clock: Clock = utc_now,
) -> ReliabilityEngine:
    settings = settings or get_settings()
    config = RetryConfig.from_settings(settings)
    recorder = MetricsRecorder(metric_store, clock=clock)
    processor = RetryProcessor(
        retry_store,
        recorder,
        config=config,
        delete_on_success=settings.retry_delete_on_success,
        clock=clock,
    )
    sweeper = RetrySweeper(
        retry_store,
        processor,
        inter_record_delay_ms=settings.retry_sweep_inter_record_delay_ms,
        clock=clock,
        lock_ttl_s=settings.retry_sweeper_lock_ttl_s,
    )
    analytics = AnalyticsService(
        metric_store,
        clock=clock,
        user_limit=settings.analytics_user_query_limit,
        system_limit=settings.analytics_system_query_limit,
    )
    return ReliabilityEngine(
        retry_store=retry_store,
        metric_store=metric_store,
        recorder=recorder,
        processor=processor,
        sweeper=sweeper,
        analytics=analytics,
        config=config,
        clock=clock,
    )


def build_engine(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    *,
    settings: Settings | None = None,
    clock: Clock = utc_now,
) -> ReliabilityEngine:
    factory = session_factory or get_sessionmaker()
    return build_engine_from_stores(
        SqlRetryStore(factory),
        SqlMetricStore(factory),
        settings=settings,
        clock=clock,
    )
