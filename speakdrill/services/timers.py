"""One-shot and periodic timers for recording sessions."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Awaitable, Callable, Protocol

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[None]]


class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


class Timers(Protocol):
    def call_later(self, delay: float, callback: TimerCallback) -> TimerHandle:
        ...

    def call_every(
        self, interval: float, callback: TimerCallback, first_delay: float
    ) -> TimerHandle:
        ...


class JobHandle:
    """Cancels an APScheduler job; safe to call more than once."""

    def __init__(self, job):
        self._job = job
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        try:
            self._job.remove()
        except JobLookupError:
            pass  # one-shot job already ran and was dropped by the scheduler


class JobTimers:
    """Timers backed by an AsyncIOScheduler running on the current event loop."""

    def __init__(self, scheduler: AsyncIOScheduler | None = None):
        self.scheduler = scheduler or AsyncIOScheduler()

    def _ensure_running(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.debug("Recording timer scheduler started")

    def _now(self) -> dt.datetime:
        return dt.datetime.now(dt.timezone.utc)

    @staticmethod
    def _wrap(callback: TimerCallback) -> Callable[[], Awaitable[None]]:
        # The executor only awaits real coroutine functions.
        async def run() -> None:
            await callback()

        return run

    def call_later(self, delay: float, callback: TimerCallback) -> JobHandle:
        self._ensure_running()
        job = self.scheduler.add_job(
            self._wrap(callback),
            trigger=DateTrigger(run_date=self._now() + dt.timedelta(seconds=delay)),
            misfire_grace_time=None,
        )
        return JobHandle(job)

    def call_every(
        self, interval: float, callback: TimerCallback, first_delay: float
    ) -> JobHandle:
        self._ensure_running()
        job = self.scheduler.add_job(
            self._wrap(callback),
            trigger=IntervalTrigger(
                seconds=interval,
                start_date=self._now() + dt.timedelta(seconds=first_delay),
            ),
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
        )
        return JobHandle(job)

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.debug("Recording timer scheduler shut down")
