from __future__ import annotations

import logging

from arq import cron
from arq.connections import RedisSettings

from pushrelay.core.config import get_settings
from pushrelay.core.logging import configure_logging
from pushrelay.services.engine import build_engine
from pushrelay.services.transport import deliver_push


logger = logging.getLogger(__name__)


async def sweep_retries(ctx) -> dict[str, int] | None:
    # One exclusive pass over due retries; a held lease means another worker is sweeping.
    engine = ctx["engine"]
    result = await engine.sweeper.run_exclusive(deliver_push)
    return result.to_dict() if result is not None else None


async def cleanup_retries(ctx, days_old: int | None = None) -> int:
    engine = ctx["engine"]
    return await engine.sweeper.cleanup_old_retries(days_old)


async def _startup(ctx) -> None:
    # Wire stores and services once per worker process.
    configure_logging()
    ctx["engine"] = build_engine()
    logger.info("retry_worker_started")


async def _shutdown(ctx) -> None:
    ctx.pop("engine", None)


class WorkerSettings:
    # Keep worker settings as class attributes for ARQ CLI compatibility.
    settings = get_settings()
    redis_settings = RedisSettings.from_dsn(settings.redis_url)
    queue_name = settings.retry_worker_queue_name
    functions = [sweep_retries, cleanup_retries]
    cron_jobs = [
        cron(sweep_retries, second=0, run_at_startup=True, unique=True),
        cron(cleanup_retries, hour=3, minute=0, second=0, unique=True),
    ]
    on_startup = _startup
    on_shutdown = _shutdown
