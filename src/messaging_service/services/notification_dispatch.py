"""Pure fan-out planning for a newly accepted message.

Given the persisted message and the conversation's participants, decide which
notification rows to create and which live pushes to send. Holds no state.
"""
from __future__ import annotations

from collections.abc import Iterable

from messaging_service.application.dto.notification import (
    DispatchPlan,
    NotificationDraft,
    NotificationPush,
)
from messaging_service.domain.entities.message import Message
from messaging_service.domain.entities.participant import Participant
from messaging_service.domain.value_objects.enums import NotificationType, RelatedType

PREVIEW_MAX_LENGTH = 50
PREVIEW_KEEP = 47
ELLIPSIS = "..."

NEW_MESSAGE_TITLE = "New Message"


def truncate_preview(content: str) -> str:
    if len(content) > PREVIEW_MAX_LENGTH:
        return content[:PREVIEW_KEEP] + ELLIPSIS
    return content


def plan_dispatch(
    message: Message,
    participants: Iterable[Participant],
) -> DispatchPlan:
    preview = truncate_preview(message.content)
    notifications: list[NotificationDraft] = []
    pushes: list[NotificationPush] = []
    seen: set[int] = set()

    for participant in participants:
        user_id = participant.user_id
        if user_id == message.sender_id or user_id in seen:
            continue
        seen.add(user_id)
        notifications.append(
            NotificationDraft(
                user_id=user_id,
                type=NotificationType.MESSAGE,
                title=NEW_MESSAGE_TITLE,
                content=preview,
                related_id=message.conversation_id,
                related_type=RelatedType.CONVERSATION,
            )
        )
        pushes.append(
            NotificationPush(
                user_id=user_id,
                type=NotificationType.MESSAGE,
                conversation_id=message.conversation_id,
            )
        )

    return DispatchPlan(notifications=notifications, pushes=pushes)
