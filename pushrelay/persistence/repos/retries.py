from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Iterable
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pushrelay.core.clock import as_utc
from pushrelay.core.errors import StoreError
from pushrelay.domain.models import NotificationRetry
from pushrelay.domain.types import (
    LastError,
    NotificationPayload,
    RetryRecord,
    RetryStatus,
)
from pushrelay.persistence.stores import RetryPatch


def _to_record(row: NotificationRetry) -> RetryRecord:
    payload_json = row.payload_json if isinstance(row.payload_json, dict) else {}
    last_error = None
    if row.last_error_code is not None:
        last_error = LastError(
            code=row.last_error_code,
            message=row.last_error_message or "",
            timestamp=as_utc(row.last_error_at or row.updated_at or row.created_at),
        )
    return RetryRecord(
        id=row.id,
        user_id=row.user_id,
        notification_id=row.notification_id,
        type=row.type,  # type: ignore[arg-type]
        payload=NotificationPayload(
            title=str(payload_json.get("title", "")),
            body=str(payload_json.get("body", "")),
            data=dict(payload_json.get("data") or {}),
        ),
        destination_token=row.destination_token,
        attempts=int(row.attempts or 0),
        max_attempts=int(row.max_attempts),
        next_retry_at=as_utc(row.next_retry_at),
        created_at=as_utc(row.created_at),
        status=row.status,  # type: ignore[arg-type]
        last_error=last_error,
    )


def _patch_values(patch: RetryPatch) -> dict[str, Any]:
    values: dict[str, Any] = {}
    if "status" in patch:
        values["status"] = patch["status"]
    if "attempts" in patch:
        values["attempts"] = int(patch["attempts"])
    if "next_retry_at" in patch:
        values["next_retry_at"] = patch["next_retry_at"]
    if "last_error" in patch:
        last_error = patch["last_error"]
        values["last_error_code"] = last_error.code if last_error else None
        values["last_error_message"] = last_error.message if last_error else None
        values["last_error_at"] = last_error.timestamp if last_error else None
    return values


class SqlRetryStore:
    """Retry store backed by the ``notification_retries`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            raise StoreError(f"retry store {operation} failed") from exc

    async def enqueue(self, record: RetryRecord) -> str:
        row = NotificationRetry(
            id=uuid4().hex,
            user_id=record.user_id,
            notification_id=record.notification_id,
            type=record.type,
            payload_json=record.payload.to_dict(),
            destination_token=record.destination_token,
            attempts=record.attempts,
            max_attempts=record.max_attempts,
            status=record.status,
            next_retry_at=record.next_retry_at,
            created_at=record.created_at,
            **_patch_values({"last_error": record.last_error}),
        )
        async with self._session("enqueue") as session:
            session.add(row)
            await session.commit()
        return row.id

    async def list_due(self, statuses: Iterable[RetryStatus], now: datetime) -> list[RetryRecord]:
        # Oldest due records first so a backlog drains in scheduling order.
        async with self._session("list_due") as session:
            rows = (
                await session.execute(
                    select(NotificationRetry)
                    .where(
                        NotificationRetry.status.in_(list(statuses)),
                        NotificationRetry.next_retry_at <= now,
                    )
                    .order_by(NotificationRetry.next_retry_at.asc(), NotificationRetry.created_at.asc())
                )
            ).scalars().all()
        return [_to_record(row) for row in rows]

    async def update(self, record_id: str, patch: RetryPatch) -> None:
        values = _patch_values(patch)
        if not values:
            return
        async with self._session("update") as session:
            await session.execute(
                update(NotificationRetry).where(NotificationRetry.id == record_id).values(**values)
            )
            await session.commit()

    async def delete(self, record_id: str) -> None:
        async with self._session("delete") as session:
            await session.execute(delete(NotificationRetry).where(NotificationRetry.id == record_id))
            await session.commit()

    async def list_by_user(self, user_id: str) -> list[RetryRecord]:
        async with self._session("list_by_user") as session:
            rows = (
                await session.execute(
                    select(NotificationRetry)
                    .where(NotificationRetry.user_id == user_id)
                    .order_by(NotificationRetry.created_at.desc())
                )
            ).scalars().all()
        return [_to_record(row) for row in rows]

    async def delete_created_before(self, statuses: Iterable[RetryStatus], cutoff: datetime) -> int:
        async with self._session("delete_created_before") as session:
            result = await session.execute(
                delete(NotificationRetry).where(
                    NotificationRetry.status.in_(list(statuses)),
                    NotificationRetry.created_at < cutoff,
                )
            )
            await session.commit()
        return int(result.rowcount or 0)
