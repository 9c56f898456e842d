from __future__ import annotations

from datetime import datetime
from typing import Protocol

from messaging_service.domain.entities.participant import Participant


class ParticipantReader(Protocol):
    async def is_participant(self, conversation_id: int, user_id: int) -> bool: ...

    async def list_participants(
        self, conversation_id: int
    ) -> list[Participant]: ...


class ParticipantWriter(Protocol):
    async def add(
        self, conversation_id: int, user_id: int, ts: datetime
    ) -> Participant:
        """Insert membership. Returns the existing row if already a member."""
        ...
