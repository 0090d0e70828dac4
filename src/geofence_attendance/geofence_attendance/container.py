from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from .attendance.locks import RecordLocks
from .attendance.memory_repository import InMemoryRecordStore
from .attendance.mysql_attendance_repository import MySQLRecordStore
from .attendance.outside_tracker import OutsideTracker
from .attendance.repository import RecordStore
from .attendance.service import AttendanceService
from .attendance.state_machine import AttendanceStateMachine
from .core import constants
from .core.exceptions import ValidationError
from .database.connection import DBConfig, DatabaseConnection
from .events.memory_repository import InMemoryEventCatalog
from .events.mysql_event_repository import MySQLEventCatalog
from .events.repository import EventCatalog
from .events.window import TimeWindowCalculator
from .monitoring.clock import ClockSource, SystemClock
from .monitoring.heartbeat import HeartbeatTimers
from .monitoring.location import PushLocationSource
from .monitoring.notifications import LoggingNotificationSink, NotificationSink
from .monitoring.scheduler import MonitoringScheduler, build_scheduler
from .monitoring.sweep import SweepJob
from .monitoring.trigger import AutoCheckTrigger
from .participants.memory_repository import InMemoryParticipantRepository
from .participants.mysql_participant_repository import MySQLParticipantRepository
from .participants.repository import ParticipantRepository


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    records: RecordStore
    events: EventCatalog
    participants: ParticipantRepository

    clock: ClockSource
    notifications: NotificationSink
    calculator: TimeWindowCalculator
    attendance_service: AttendanceService

    location_source: PushLocationSource
    heartbeat_timers: HeartbeatTimers
    trigger: AutoCheckTrigger
    sweep: SweepJob
    monitoring: MonitoringScheduler


def build_container(
    settings: Any,
    *,
    clock: Optional[ClockSource] = None,
    notifications: Optional[NotificationSink] = None,
) -> Container:
    """Wire the engine from a settings module (see config/)."""

    def setting(name: str, default: Any) -> Any:
        return getattr(settings, name, default)

    clock = clock or SystemClock()
    notifications = notifications or LoggingNotificationSink()

    backend = str(setting("STORE_BACKEND", "mysql")).lower()
    conn: Optional[DatabaseConnection] = None
    if backend == "mysql":
        conn = DatabaseConnection.get_instance(DBConfig.from_dict(setting("DB_CONFIG", {})))
        records: RecordStore = MySQLRecordStore(conn)
        events: EventCatalog = MySQLEventCatalog(conn)
        participants: ParticipantRepository = MySQLParticipantRepository(conn)
    elif backend == "memory":
        records = InMemoryRecordStore()
        events = InMemoryEventCatalog()
        participants = InMemoryParticipantRepository()
    else:
        raise ValidationError(f"Unknown STORE_BACKEND {backend!r} (expected 'mysql' or 'memory')")

    calculator = TimeWindowCalculator()
    machine = AttendanceStateMachine(
        OutsideTracker(warning_fraction=setting("WARNING_FRACTION", constants.DEFAULT_WARNING_FRACTION))
    )
    attendance_service = AttendanceService(
        records,
        events,
        participants,
        clock=clock,
        notifications=notifications,
        machine=machine,
        calculator=calculator,
        locks=RecordLocks(),
    )

    location_source = PushLocationSource(
        max_age_s=setting("LOCATION_MAX_AGE_SECONDS", constants.DEFAULT_LOCATION_MAX_AGE_SECONDS),
        now=clock.now,
    )
    scheduler = build_scheduler()
    heartbeat_timers = HeartbeatTimers(scheduler)
    trigger = AutoCheckTrigger(
        attendance_service,
        records,
        events,
        location_source,
        heartbeat_timers,
        clock=clock,
        notifications=notifications,
        heartbeat_interval_s=setting("HEARTBEAT_INTERVAL_SECONDS", constants.DEFAULT_HEARTBEAT_INTERVAL_SECONDS),
        location_timeout_s=setting("LOCATION_TIMEOUT_SECONDS", constants.DEFAULT_LOCATION_TIMEOUT_SECONDS),
        failure_threshold=setting("LOCATION_FAILURE_THRESHOLD", constants.DEFAULT_LOCATION_FAILURE_THRESHOLD),
    )
    sweep = SweepJob(attendance_service, records, events, clock=clock)
    monitoring = MonitoringScheduler(
        scheduler,
        trigger,
        sweep,
        sweep_interval_s=setting("SWEEP_INTERVAL_SECONDS", constants.DEFAULT_SWEEP_INTERVAL_SECONDS),
        sync_interval_s=setting("MONITOR_SYNC_INTERVAL_SECONDS", constants.DEFAULT_MONITOR_SYNC_INTERVAL_SECONDS),
    )

    return Container(
        conn=conn,
        records=records,
        events=events,
        participants=participants,
        clock=clock,
        notifications=notifications,
        calculator=calculator,
        attendance_service=attendance_service,
        location_source=location_source,
        heartbeat_timers=heartbeat_timers,
        trigger=trigger,
        sweep=sweep,
        monitoring=monitoring,
    )
