from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from messaging_service.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(
        self, conversation_id: int, *, limit: int | None = None,
    ) -> list[Message]:
        """Messages in ascending (created_at, id) order.

        With ``limit`` only the newest ``limit`` messages are returned,
        still in ascending order.
        """
        ...

    async def last_message(self, conversation_id: int) -> Message | None: ...

    async def count_unread_in_conversation(
        self, conversation_id: int, reader_id: int,
    ) -> int: ...

    async def count_unread_for_user(self, user_id: int) -> int:
        """Unread messages authored by others across all of the user's conversations."""
        ...

    async def get_by_client_msg_id(
        self, conversation_id: int, sender_id: int, client_msg_id: UUID,
    ) -> Message | None: ...


class MessageWriter(Protocol):
    async def append(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        ts: datetime,
        *,
        client_msg_id: UUID | None = None,
    ) -> tuple[Message, bool]:
        """Insert message. Return (message, created).

        Raises ValidationError for empty content. When ``client_msg_id``
        collides with an earlier send the stored message is returned with
        created=False.
        """
        ...

    async def mark_conversation_read(
        self, conversation_id: int, reader_id: int,
    ) -> int:
        """Flip read=True on messages not sent by ``reader_id``. Returns rows changed."""
        ...
