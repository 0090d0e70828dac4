from __future__ import annotations

import logging
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from ..core.constants import DEFAULT_MONITOR_SYNC_INTERVAL_SECONDS, DEFAULT_SWEEP_INTERVAL_SECONDS
from .sweep import SweepJob
from .trigger import AutoCheckTrigger

logger = logging.getLogger(__name__)


def build_scheduler() -> BackgroundScheduler:
    return BackgroundScheduler(timezone="UTC", job_defaults={"coalesce": True, "max_instances": 1})


class MonitoringScheduler:
    """Owns the periodic jobs: sweep, monitor sync, and (through the trigger) heartbeats."""

    def __init__(
        self,
        scheduler: BaseScheduler,
        trigger: AutoCheckTrigger,
        sweep: SweepJob,
        *,
        sweep_interval_s: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        sync_interval_s: float = DEFAULT_MONITOR_SYNC_INTERVAL_SECONDS,
    ):
        self._scheduler = scheduler
        self._trigger = trigger
        self._sweep = sweep
        self._sweep_interval_s = float(sweep_interval_s)
        self._sync_interval_s = float(sync_interval_s)

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def start(self) -> None:
        if self.running:
            return
        self._scheduler.add_job(
            self._guarded("sweep", self._sweep.run),
            "interval",
            seconds=self._sweep_interval_s,
            id="attendance-sweep",
            replace_existing=True,
        )
        self._scheduler.add_job(
            self._guarded("monitor sync", self._trigger.sync),
            "interval",
            seconds=self._sync_interval_s,
            id="monitor-sync",
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "attendance scheduler started (sweep every %ss, monitor sync every %ss)",
            self._sweep_interval_s, self._sync_interval_s,
        )

    def shutdown(self, wait: bool = False) -> None:
        """Release every monitoring session, then stop the scheduler."""
        self._trigger.shutdown()
        if self.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("attendance scheduler stopped")

    @staticmethod
    def _guarded(name: str, func: Callable[[], object]) -> Callable[[], None]:
        def run() -> None:
            try:
                func()
            except Exception:
                logger.exception("%s job failed", name)

        run.__name__ = name.replace(" ", "_")
        return run
