from __future__ import annotations

import asyncio

from pushrelay.core.config import get_settings
from pushrelay.core.logging import configure_logging
from pushrelay.services.engine import build_engine
from pushrelay.services.transport import deliver_push
from pushrelay.workers.scheduler import build_retry_scheduler


async def _main() -> None:
    # Run sweeps and cleanup in-process for deployments without the arq worker.
    configure_logging()
    settings = get_settings()
    engine = build_engine(settings=settings)
    scheduler = build_retry_scheduler(engine.sweeper, deliver_push, settings)
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()


if __name__ == "__main__":
    asyncio.run(_main())
