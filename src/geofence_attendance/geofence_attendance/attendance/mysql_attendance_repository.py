from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from typing import Any, Dict, Optional, Sequence

from mysql.connector import errorcode
from mysql.connector.errors import IntegrityError

from ..core.enums import AlertType, AttendanceState, CheckOutReason
from ..core.exceptions import DuplicateRecord
from ..database.connection import DatabaseConnection
from ..database.mysql_base import (
    db_cursor,
    fetchall,
    from_db_datetime,
    optional_float,
    to_db_datetime,
)
from .model import Alert, AttendanceRecord
from .repository import RecordStore

_COLUMNS = """
    record_id, participant_id, event_id, state, checked_in_at, checked_out_at, checkout_reason,
    last_latitude, last_longitude, last_accuracy, last_location_at, last_distance_m,
    cumulative_outside_s, outside_since, version
"""

_OPEN_STATES = tuple(s.value for s in AttendanceState if not s.is_terminal)


class MySQLRecordStore(RecordStore):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    @staticmethod
    def _to_alert(row: Dict[str, Any]) -> Alert:
        return Alert(
            alert_type=AlertType(row["alert_type"]),
            created_at=from_db_datetime(row["created_at"]),
            acknowledged=bool(row["acknowledged"]),
            alert_id=str(row["alert_id"]),
        )

    @staticmethod
    def _to_record(row: Dict[str, Any], alerts: Sequence[Alert] = ()) -> AttendanceRecord:
        reason = row.get("checkout_reason")
        return AttendanceRecord(
            record_id=int(row["record_id"]),
            participant_id=int(row["participant_id"]),
            event_id=int(row["event_id"]),
            state=AttendanceState(row["state"]),
            checked_in_at=from_db_datetime(row.get("checked_in_at")),
            checked_out_at=from_db_datetime(row.get("checked_out_at")),
            checkout_reason=CheckOutReason(reason) if reason else None,
            last_latitude=optional_float(row.get("last_latitude")),
            last_longitude=optional_float(row.get("last_longitude")),
            last_accuracy=optional_float(row.get("last_accuracy")),
            last_location_at=from_db_datetime(row.get("last_location_at")),
            last_distance_m=optional_float(row.get("last_distance_m")),
            cumulative_outside_s=float(row.get("cumulative_outside_s") or 0.0),
            outside_since=from_db_datetime(row.get("outside_since")),
            alerts=tuple(alerts),
            version=int(row["version"]),
        )

    def _load(self, cur, where: str, params: tuple) -> list[AttendanceRecord]:
        cur.execute(f"SELECT {_COLUMNS} FROM attendance_records WHERE {where} ORDER BY record_id", params)
        rows = fetchall(cur)
        if not rows:
            return []

        ids = [int(r["record_id"]) for r in rows]
        placeholders = ",".join(["%s"] * len(ids))
        cur.execute(
            f"""
            SELECT alert_id, record_id, alert_type, created_at, acknowledged
            FROM attendance_alerts
            WHERE record_id IN ({placeholders})
            ORDER BY record_id, seq
            """,
            tuple(ids),
        )
        alerts: dict[int, list[Alert]] = defaultdict(list)
        for a in fetchall(cur):
            alerts[int(a["record_id"])].append(self._to_alert(a))
        return [self._to_record(r, alerts[int(r["record_id"])]) for r in rows]

    def get(self, record_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            found = self._load(cur, "record_id=%s", (int(record_id),))
            return found[0] if found else None

    def find_for(self, participant_id: int, event_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            found = self._load(cur, "participant_id=%s AND event_id=%s", (int(participant_id), int(event_id)))
            return found[0] if found else None

    def list_for_event(self, event_id: int) -> Sequence[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            return self._load(cur, "event_id=%s", (int(event_id),))

    def list_open(self) -> Sequence[AttendanceRecord]:
        placeholders = ",".join(["%s"] * len(_OPEN_STATES))
        with db_cursor(self._conn_factory) as (_, cur):
            return self._load(cur, f"state IN ({placeholders})", _OPEN_STATES)

    @staticmethod
    def _values(record: AttendanceRecord) -> tuple:
        return (
            record.state.value,
            to_db_datetime(record.checked_in_at),
            to_db_datetime(record.checked_out_at),
            record.checkout_reason.value if record.checkout_reason else None,
            record.last_latitude,
            record.last_longitude,
            record.last_accuracy,
            to_db_datetime(record.last_location_at),
            record.last_distance_m,
            float(record.cumulative_outside_s),
            to_db_datetime(record.outside_since),
        )

    @staticmethod
    def _save_alerts(cur, record_id: int, alerts: Sequence[Alert]) -> None:
        # Alerts are append-only; only `acknowledged` can change on an existing row.
        for seq, alert in enumerate(alerts):
            cur.execute(
                """
                INSERT INTO attendance_alerts(alert_id, record_id, alert_type, created_at, acknowledged, seq)
                VALUES(%s,%s,%s,%s,%s,%s)
                ON DUPLICATE KEY UPDATE acknowledged=VALUES(acknowledged)
                """,
                (
                    alert.alert_id,
                    record_id,
                    alert.alert_type.value,
                    to_db_datetime(alert.created_at),
                    1 if alert.acknowledged else 0,
                    seq,
                ),
            )

    def add(self, record: AttendanceRecord) -> AttendanceRecord:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    INSERT INTO attendance_records(
                        participant_id, event_id, state, checked_in_at, checked_out_at, checkout_reason,
                        last_latitude, last_longitude, last_accuracy, last_location_at, last_distance_m,
                        cumulative_outside_s, outside_since, version
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,0)
                    """,
                    (record.participant_id, record.event_id) + self._values(record),
                )
                record_id = int(cur.lastrowid)
                self._save_alerts(cur, record_id, record.alerts)
        except IntegrityError as exc:
            if exc.errno == errorcode.ER_DUP_ENTRY:
                raise DuplicateRecord(
                    f"Participant {record.participant_id} already has a record for event {record.event_id}"
                ) from exc
            raise
        return replace(record, record_id=record_id, version=0)

    def compare_and_set(self, record: AttendanceRecord, *, expected_version: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance_records
                SET state=%s, checked_in_at=%s, checked_out_at=%s, checkout_reason=%s,
                    last_latitude=%s, last_longitude=%s, last_accuracy=%s, last_location_at=%s,
                    last_distance_m=%s, cumulative_outside_s=%s, outside_since=%s, version=%s
                WHERE record_id=%s AND version=%s
                """,
                self._values(record) + (int(record.version), int(record.record_id), int(expected_version)),
            )
            if cur.rowcount == 0:
                return False
            self._save_alerts(cur, record.record_id, record.alerts)
            return True
