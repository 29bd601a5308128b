from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pushrelay.core.clock import as_utc, utc_now
from pushrelay.core.errors import StoreError
from pushrelay.domain.models import NotificationMetric
from pushrelay.domain.types import DeviceInfo, Metric
from pushrelay.persistence.stores import SYSTEM_SCOPE


def _to_metric(row: NotificationMetric) -> Metric:
    device = row.device_info_json if isinstance(row.device_info_json, dict) else None
    return Metric(
        id=row.id,
        user_id=row.user_id,
        notification_id=row.notification_id,
        type=row.type,  # type: ignore[arg-type]
        status=row.status,  # type: ignore[arg-type]
        timestamp=as_utc(row.timestamp),
        response_time_ms=row.response_time_ms,
        error_code=row.error_code,
        error_message=row.error_message,
        destination_token=row.destination_token,
        device_info=(
            DeviceInfo(platform=str(device.get("platform", "")), user_agent=str(device.get("user_agent", "")))
            if device
            else None
        ),
    )


class SqlMetricStore:
    """Append-only metric store backed by the ``notification_metrics`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StoreError(f"metric store {operation} failed") from exc

    async def append(self, metric: Metric) -> str:
        device = metric.device_info
        row = NotificationMetric(
            id=uuid4().hex,
            user_id=metric.user_id,
            notification_id=metric.notification_id,
            type=metric.type,
            status=metric.status,
            timestamp=metric.timestamp or utc_now(),
            response_time_ms=metric.response_time_ms,
            error_code=metric.error_code,
            error_message=metric.error_message,
            destination_token=metric.destination_token,
            device_info_json=(
                {"platform": device.platform, "user_agent": device.user_agent} if device else None
            ),
        )
        async with self._session("append") as session:
            session.add(row)
            await session.commit()
        return row.id

    async def query_window(self, scope: str, since: datetime, limit: int) -> list[Metric]:
        stmt = select(NotificationMetric).where(NotificationMetric.timestamp >= since)
        if scope != SYSTEM_SCOPE:
            stmt = stmt.where(NotificationMetric.user_id == scope)
        stmt = stmt.order_by(NotificationMetric.timestamp.desc(), NotificationMetric.id.desc()).limit(
            max(1, int(limit))
        )
        async with self._session("query_window") as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_metric(row) for row in rows]
