from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from messaging_service.application.dto.notification import NotificationPush
from messaging_service.domain.entities.conversation import Conversation
from messaging_service.domain.entities.message import Message
from messaging_service.domain.entities.participant import Participant


@dataclass(frozen=True, slots=True)
class ParticipantView:
    user_id: int
    display_name: str
    avatar_url: str | None
    joined_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ConversationView:
    id: int
    property_id: int | None
    last_message_at: datetime
    created_at: datetime
    participants: list[ParticipantView]
    last_message: Message | None
    unread_count: int


@dataclass(frozen=True, slots=True)
class ConversationDetail:
    conversation: Conversation
    participants: list[Participant]
    messages: list[Message]


@dataclass(frozen=True, slots=True)
class UnreadSummary:
    messages: int
    notifications: int


@dataclass(frozen=True, slots=True)
class SendResult:
    """Outcome of a committed send: what the hub must push and broadcast."""

    message: Message
    created: bool
    pushes: list[NotificationPush] = field(default_factory=list)
