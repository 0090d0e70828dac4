from __future__ import annotations

from typing import Optional

from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone
from .model import Participant
from .repository import ParticipantRepository


class MySQLParticipantRepository(ParticipantRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, participant_id: int) -> Optional[Participant]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT participant_id, full_name, email FROM participants WHERE participant_id=%s",
                (int(participant_id),),
            )
            r = fetchone(cur)
            if not r:
                return None
            return Participant(participant_id=int(r["participant_id"]), name=r["full_name"], email=r["email"])
