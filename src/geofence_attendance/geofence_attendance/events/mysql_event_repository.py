from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, normalize_mysql_time
from .model import Event
from .repository import EventCatalog

_COLUMNS = """
    event_id, title, start_date, start_time, end_date, end_time, timezone,
    center_lat, center_lon, radius_m, max_time_outside_s
"""


class MySQLEventCatalog(EventCatalog):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    @staticmethod
    def _to_event(r: Dict[str, Any]) -> Event:
        return Event(
            event_id=int(r["event_id"]),
            title=str(r["title"]),
            start_date=r["start_date"],
            start_time=normalize_mysql_time(r.get("start_time")),
            end_date=r.get("end_date"),
            end_time=normalize_mysql_time(r.get("end_time")),
            timezone=str(r.get("timezone") or "UTC"),
            center_lat=float(r["center_lat"]),
            center_lon=float(r["center_lon"]),
            radius_m=float(r["radius_m"]),
            max_time_outside_s=int(r["max_time_outside_s"]),
        )

    def get_by_id(self, event_id: int) -> Optional[Event]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM events WHERE event_id=%s", (int(event_id),))
            r = fetchone(cur)
            return self._to_event(r) if r else None

    def list_events(self) -> Sequence[Event]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM events ORDER BY start_date, start_time")
            return [self._to_event(r) for r in fetchall(cur)]
