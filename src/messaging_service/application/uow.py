from __future__ import annotations

from typing import Protocol

from messaging_service.application.repositories.conversation import (
    ConversationReader,
    ConversationWriter,
)
from messaging_service.application.repositories.message import MessageReader, MessageWriter
from messaging_service.application.repositories.notification import (
    NotificationReader,
    NotificationWriter,
)
from messaging_service.application.repositories.participant import (
    ParticipantReader,
    ParticipantWriter,
)
from messaging_service.application.repositories.user import UserReader


class UnitOfWork(Protocol):
    conversations: ConversationReader
    conversations_w: ConversationWriter
    participants: ParticipantReader
    participants_w: ParticipantWriter
    messages: MessageReader
    messages_w: MessageWriter
    notifications: NotificationReader
    notifications_w: NotificationWriter
    users: UserReader

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...
