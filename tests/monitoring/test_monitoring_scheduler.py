from __future__ import annotations

import pytest

from geofence_attendance.monitoring.scheduler import MonitoringScheduler


class FakeScheduler:
    def __init__(self):
        self.jobs = {}
        self.running = False
        self.shutdown_calls = []

    def add_job(self, func, trigger, *, seconds, id, replace_existing):
        self.jobs[id] = (func, trigger, seconds)

    def start(self):
        self.running = True

    def shutdown(self, wait=True):
        self.running = False
        self.shutdown_calls.append(wait)


class Recorder:
    def __init__(self, fail=False):
        self.calls = 0
        self.fail = fail

    def __call__(self):
        self.calls += 1
        if self.fail:
            raise RuntimeError("job exploded")


class FakeTrigger:
    def __init__(self, fail=False):
        self.sync = Recorder(fail)
        self.shutdowns = 0

    def shutdown(self):
        self.shutdowns += 1


class FakeSweep:
    def __init__(self, fail=False):
        self.run = Recorder(fail)


def test_start_schedules_sweep_and_sync():
    scheduler = FakeScheduler()
    monitoring = MonitoringScheduler(scheduler, FakeTrigger(), FakeSweep(), sweep_interval_s=300, sync_interval_s=60)

    monitoring.start()
    monitoring.start()

    assert monitoring.running
    assert {k: v[2] for k, v in scheduler.jobs.items()} == {"attendance-sweep": 300.0, "monitor-sync": 60.0}


def test_job_failures_are_logged_not_raised(caplog):
    scheduler = FakeScheduler()
    trigger, sweep = FakeTrigger(fail=True), FakeSweep(fail=True)
    MonitoringScheduler(scheduler, trigger, sweep).start()

    for func, _, _ in scheduler.jobs.values():
        func()

    assert trigger.sync.calls == 1
    assert sweep.run.calls == 1
    assert "sweep job failed" in caplog.text
    assert "monitor sync job failed" in caplog.text


def test_shutdown_releases_trigger_then_scheduler():
    scheduler = FakeScheduler()
    trigger = FakeTrigger()
    monitoring = MonitoringScheduler(scheduler, trigger, FakeSweep())
    monitoring.start()

    monitoring.shutdown()
    monitoring.shutdown()

    assert trigger.shutdowns == 2
    assert scheduler.shutdown_calls == [False]
    assert not monitoring.running
