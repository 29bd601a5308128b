from __future__ import annotations

from datetime import datetime
from typing import Iterable, Protocol, TypedDict

from pushrelay.domain.types import LastError, Metric, RetryRecord, RetryStatus


# Metric window scope covering every user.
SYSTEM_SCOPE = "*"


class RetryPatch(TypedDict, total=False):
    status: RetryStatus
    attempts: int
    next_retry_at: datetime
    last_error: LastError | None


class RetryStore(Protocol):
    """Persistence contract for retry records.

    Adapters raise ``StoreError`` on any backend failure and convert their native
    timestamps to UTC ``datetime`` values.
    """

    async def enqueue(self, record: RetryRecord) -> str: ...

    async def list_due(self, statuses: Iterable[RetryStatus], now: datetime) -> list[RetryRecord]: ...

    async def update(self, record_id: str, patch: RetryPatch) -> None: ...

    async def delete(self, record_id: str) -> None: ...

    async def list_by_user(self, user_id: str) -> list[RetryRecord]: ...

    async def delete_created_before(self, statuses: Iterable[RetryStatus], cutoff: datetime) -> int: ...


class MetricStore(Protocol):
    """Append-only persistence contract for delivery metrics."""

    async def append(self, metric: Metric) -> str: ...

    async def query_window(self, scope: str, since: datetime, limit: int) -> list[Metric]:
        """Return metrics for ``scope`` (a user id or ``SYSTEM_SCOPE``) newest first."""
        ...
