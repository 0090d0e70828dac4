from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Participant:
    """Domain entity: a participant. Immutable for the monitoring engine."""

    participant_id: int
    name: str
    email: str
