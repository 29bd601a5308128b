from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Any, Awaitable, Callable

from pushrelay.core.clock import Clock, utc_now
from pushrelay.core.config import Settings, get_settings
from pushrelay.services.retry.processor import SendFn
from pushrelay.services.retry.sweeper import RetrySweeper


logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


@dataclass(slots=True)
class ScheduledJob:
    name: str
    interval_s: float
    func: JobFunc
    next_run_at: datetime
    last_result: Any = None
    last_error: str | None = None
    runs: int = 0


class SweepScheduler:
    """In-process periodic job runner with an explicit job table.

    Jobs run sequentially inside ``run_due``; a failing job is logged and rescheduled.
    ``start`` drives ``run_due`` from a single background task until ``stop`` is called.
    """

    def __init__(
        self,
        *,
        clock: Clock = utc_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        tick_s: float = 1.0,
    ) -> None:
        if tick_s <= 0:
            raise ValueError("tick_s must be positive")
        self._clock = clock
        self._sleep = sleep
        self._tick_s = tick_s
        self._jobs: dict[str, ScheduledJob] = {}
        self._task: asyncio.Task[None] | None = None

    @property
    def jobs(self) -> dict[str, ScheduledJob]:
        return dict(self._jobs)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_job(
        self,
        name: str,
        func: JobFunc,
        *,
        interval_s: float,
        run_immediately: bool = True,
    ) -> ScheduledJob:
        if name in self._jobs:
            raise ValueError(f"job already registered: {name}")
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        now = self._clock()
        first_run = now if run_immediately else now + timedelta(seconds=interval_s)
        job = ScheduledJob(name=name, interval_s=interval_s, func=func, next_run_at=first_run)
        self._jobs[name] = job
        return job

    def remove_job(self, name: str) -> bool:
        return self._jobs.pop(name, None) is not None

    async def run_due(self, now: datetime | None = None) -> list[str]:
        current = now or self._clock()
        ran: list[str] = []
        for job in list(self._jobs.values()):
            if job.next_run_at > current:
                continue
            try:
                job.last_result = await job.func()
                job.last_error = None
            except Exception as exc:  # noqa: BLE001 - keep the scheduler alive while surfacing failures in logs.
                job.last_error = str(exc) or type(exc).__name__
                logger.exception("scheduled_job_failed job=%s", job.name)
            job.runs += 1
            job.next_run_at = current + timedelta(seconds=job.interval_s)
            ran.append(job.name)
        return ran

    async def _loop(self) -> None:
        while True:
            await self.run_due()
            await self._sleep(self._tick_s)

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop())
        logger.info("sweep_scheduler_started jobs=%s", ",".join(sorted(self._jobs)))

    async def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("sweep_scheduler_stopped")


def build_retry_scheduler(
    sweeper: RetrySweeper,
    send_fn: SendFn,
    settings: Settings | None = None,
    *,
    clock: Clock = utc_now,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> SweepScheduler:
    settings = settings or get_settings()
    scheduler = SweepScheduler(clock=clock, sleep=sleep)

    async def _sweep() -> Any:
        return await sweeper.run_exclusive(send_fn)

    async def _cleanup() -> int:
        return await sweeper.cleanup_old_retries(settings.retry_cleanup_days_old)

    scheduler.add_job("retry_sweep", _sweep, interval_s=max(1, settings.retry_sweep_interval_s))
    scheduler.add_job("retry_cleanup", _cleanup, interval_s=max(1, settings.retry_cleanup_interval_s))
    return scheduler
