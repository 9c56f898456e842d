from __future__ import annotations

from dataclasses import dataclass, field

from messaging_service.domain.value_objects.enums import NotificationType, RelatedType


@dataclass(frozen=True, slots=True)
class NotificationDraft:
    user_id: int
    content: str
    type: str = NotificationType.MESSAGE
    title: str = "New Message"
    related_id: int | None = None
    related_type: str | None = RelatedType.CONVERSATION


@dataclass(frozen=True, slots=True)
class NotificationPush:
    """Lightweight "you have a notification" event for a user's live connections."""

    user_id: int
    type: str
    conversation_id: int


@dataclass(frozen=True, slots=True)
class DispatchPlan:
    notifications: list[NotificationDraft] = field(default_factory=list)
    pushes: list[NotificationPush] = field(default_factory=list)
