from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Any
from uuid import uuid4

from redis.asyncio import Redis
from redis.exceptions import RedisError

from pushrelay.core.config import get_settings


logger = logging.getLogger(__name__)

SWEEPER_LOCK_KEY = "pushrelay:retries:sweeper:lock"
MIN_LEASE_TTL_S = 5

_client: Redis | None = None
_client_loop: asyncio.AbstractEventLoop | None = None

_local_lock = asyncio.Lock()
_local_lock_owner: str | None = None


async def get_lease_redis() -> Redis | None:
    # Clients are bound to the loop that created them; arq and test loops each get their own.
    global _client, _client_loop
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        return None
    if _client is not None and _client_loop is loop:
        return _client
    try:
        client = Redis.from_url(get_settings().redis_url, decode_responses=True)
    except (RedisError, ValueError) as exc:
        logger.warning("lease_redis_unavailable", exc_info=exc)
        return None
    _client, _client_loop = client, loop
    return client


@dataclass(slots=True)
class SweeperLock:
    token: str
    ttl_s: int
    redis: Any | None
    local: bool


def _lease_ttl(ttl_s: int | None) -> int:
    return max(MIN_LEASE_TTL_S, int(ttl_s if ttl_s is not None else get_settings().retry_sweeper_lock_ttl_s))


async def _holds(lock: SweeperLock) -> bool:
    current = await lock.redis.get(SWEEPER_LOCK_KEY)
    if isinstance(current, (bytes, bytearray)):
        current = current.decode("utf-8")
    return current == lock.token


async def acquire_sweeper_lock(*, ttl_s: int | None = None) -> SweeperLock | None:
    """Claim the single-sweeper lease; ``None`` means another sweeper holds it.

    The Redis lease expires after ``ttl_s`` unless renewed with ``renew_sweeper_lock``.
    When Redis is unreachable the lease degrades to an in-process lock.
    """
    global _local_lock_owner
    token = uuid4().hex
    ttl = _lease_ttl(ttl_s)
    redis = await get_lease_redis()
    if redis is not None:
        try:
            acquired = await redis.set(SWEEPER_LOCK_KEY, token, nx=True, ex=ttl)
        except (RedisError, OSError) as exc:
            logger.warning("sweeper_lock_redis_failed falling_back=local", exc_info=exc)
        else:
            return SweeperLock(token=token, ttl_s=ttl, redis=redis, local=False) if acquired else None

    if _local_lock.locked():
        return None
    await _local_lock.acquire()
    _local_lock_owner = token
    return SweeperLock(token=token, ttl_s=ttl, redis=None, local=True)


async def renew_sweeper_lock(lock: SweeperLock) -> bool:
    """Push the lease expiry out by its TTL; ``False`` once another sweeper owns the key."""
    if lock.local:
        return _local_lock_owner == lock.token
    if lock.redis is None:
        return False
    try:
        if not await _holds(lock):
            return False
        await lock.redis.expire(SWEEPER_LOCK_KEY, lock.ttl_s)
    except (RedisError, OSError) as exc:
        # Keep sweeping; the lease may still be valid until its current expiry.
        logger.warning("sweeper_lock_renew_failed", exc_info=exc)
    return True


async def release_sweeper_lock(lock: SweeperLock) -> None:
    global _local_lock_owner
    if lock.local:
        if _local_lock.locked() and _local_lock_owner == lock.token:
            _local_lock_owner = None
            _local_lock.release()
        return
    if lock.redis is None:
        return
    try:
        # A stale holder must not delete a lease taken over after expiry.
        if await _holds(lock):
            await lock.redis.delete(SWEEPER_LOCK_KEY)
    except (RedisError, OSError) as exc:
        logger.warning("sweeper_lock_release_failed", exc_info=exc)
