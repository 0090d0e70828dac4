from __future__ import annotations

import logging
from typing import Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.base import BaseScheduler

logger = logging.getLogger(__name__)

JOB_PREFIX = "heartbeat:"


class HeartbeatTimers:
    """Per-record interval jobs that force a re-check when no samples arrive."""

    def __init__(self, scheduler: BaseScheduler):
        self._scheduler = scheduler

    @staticmethod
    def job_id(record_id: int) -> str:
        return f"{JOB_PREFIX}{int(record_id)}"

    def start(self, record_id: int, func: Callable[[], None], interval_s: float) -> None:
        self._scheduler.add_job(
            func,
            "interval",
            seconds=float(interval_s),
            id=self.job_id(record_id),
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=max(1, int(interval_s)),
        )
        logger.debug("heartbeat started for record=%s every %ss", record_id, interval_s)

    def stop(self, record_id: int) -> bool:
        try:
            self._scheduler.remove_job(self.job_id(record_id))
        except JobLookupError:
            return False
        logger.debug("heartbeat stopped for record=%s", record_id)
        return True

    def active_record_ids(self) -> set[int]:
        return {
            int(job.id[len(JOB_PREFIX):])
            for job in self._scheduler.get_jobs()
            if job.id.startswith(JOB_PREFIX)
        }
