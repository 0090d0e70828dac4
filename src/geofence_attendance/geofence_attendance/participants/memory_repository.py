from __future__ import annotations

from typing import Iterable, Optional

from .model import Participant
from .repository import ParticipantRepository


class InMemoryParticipantRepository(ParticipantRepository):
    def __init__(self, participants: Iterable[Participant] = ()):
        self._by_id: dict[int, Participant] = {p.participant_id: p for p in participants}

    def get_by_id(self, participant_id: int) -> Optional[Participant]:
        return self._by_id.get(int(participant_id))

    def add(self, participant: Participant) -> None:
        self._by_id[participant.participant_id] = participant
