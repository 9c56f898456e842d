from __future__ import annotations

from messaging_service.application.dto.notification import NotificationDraft
from messaging_service.domain.entities.notification import Notification
from messaging_service.infrastructure.db.models.notification import NotificationModel


def model_to_entity(model: NotificationModel) -> Notification:
    return Notification(
        id=model.id,
        user_id=model.user_id,
        type=model.type,
        title=model.title,
        content=model.content,
        related_id=model.related_id,
        related_type=model.related_type,
        read=bool(model.read),
        created_at=model.created_at,
    )


def draft_to_model(draft: NotificationDraft) -> NotificationModel:
    return NotificationModel(
        user_id=draft.user_id,
        type=str(draft.type),
        title=draft.title,
        content=draft.content,
        related_id=draft.related_id,
        related_type=str(draft.related_type) if draft.related_type else None,
        read=False,
    )
