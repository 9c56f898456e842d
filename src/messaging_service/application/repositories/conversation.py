from __future__ import annotations

from datetime import datetime
from typing import Protocol

from messaging_service.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: int) -> Conversation | None: ...

    async def find_between(
        self, user_a: int, user_b: int, *, property_id: int | None = None,
    ) -> Conversation | None:
        """Find a conversation where both users participate.

        When ``property_id`` is given the conversation must be scoped to it.
        """
        ...

    async def list_for_user(self, user_id: int) -> list[Conversation]:
        """Conversations the user participates in, newest activity first."""
        ...


class ConversationWriter(Protocol):
    async def create(self, property_id: int | None, ts: datetime) -> Conversation:
        """Always inserts a new row; de-duplication is the caller's job."""
        ...

    async def touch_last_message_at(
        self, conversation_id: int, ts: datetime
    ) -> None:
        """Never moves ``last_message_at`` backwards. No-op for unknown ids."""
        ...
