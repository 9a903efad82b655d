"""Fixed-interval background jobs using APScheduler."""

import logging
from collections.abc import Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class PeriodicSync:
    """Runs one coroutine job every ``interval_seconds`` on the running loop.

    Must be started from inside a running event loop. Overlapping runs
    are coalesced into one.
    """

    def __init__(
        self,
        job: Callable[[], Awaitable[None]],
        interval_seconds: float,
        job_id: str = "periodic_push",
    ) -> None:
        self.job = job
        self.interval_seconds = interval_seconds
        self.job_id = job_id
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        if self.running:
            return
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.job,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=self.job_id,
            name="Push local snapshot to remote",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("Periodic sync started: every %ss (job=%s)", self.interval_seconds, self.job_id)

    def stop(self) -> None:
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Periodic sync stopped (job=%s)", self.job_id)
