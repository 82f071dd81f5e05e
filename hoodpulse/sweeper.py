"""Background jobs that expire sessions and rate-limit windows."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class Sweeper:
    """Schedules each sweep callable every ``interval`` seconds.

    Each sweep is its own interval job on an ``AsyncIOScheduler`` bound to the
    running loop. Sweeps are plain synchronous calls over in-memory maps, so
    the jobs run them on the loop itself. A failing sweep is logged and its
    job keeps its schedule.
    """

    def __init__(self, sweeps: Sequence[Callable[[], int]], interval: float = 600.0) -> None:
        self._sweeps = list(sweeps)
        self._interval = interval
        self._scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start the scheduler; must be called with an event loop running."""
        if self.running:
            return
        scheduler = AsyncIOScheduler()
        for index, sweep in enumerate(self._sweeps):
            scheduler.add_job(
                self._job(sweep),
                trigger=IntervalTrigger(seconds=self._interval),
                id=f"sweep_{index}",
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )
        scheduler.start()
        self._scheduler = scheduler
        logger.debug("Sweeper started: %d job(s) every %.0fs", len(self._sweeps), self._interval)

    def stop(self) -> None:
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)
            logger.debug("Sweeper stopped")

    def run_once(self) -> int:
        """Run every sweep once; returns the total number of entries removed."""
        removed = sum(self._run_sweep(sweep) for sweep in self._sweeps)
        if removed:
            logger.debug("Sweeper removed %d expired entr%s", removed, "y" if removed == 1 else "ies")
        return removed

    @staticmethod
    def _run_sweep(sweep: Callable[[], int]) -> int:
        try:
            return sweep()
        except Exception:
            logger.exception("Sweep %r failed", sweep)
            return 0

    def _job(self, sweep: Callable[[], int]) -> Callable[[], object]:
        async def job() -> None:
            removed = self._run_sweep(sweep)
            if removed:
                logger.debug("Sweep %r removed %d entr%s", sweep, removed, "y" if removed == 1 else "ies")

        return job
