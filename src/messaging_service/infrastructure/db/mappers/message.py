from __future__ import annotations

from messaging_service.domain.entities.message import Message
from messaging_service.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        sender_id=model.sender_id,
        content=model.content,
        read=bool(model.read),
        created_at=model.created_at,
        client_msg_id=model.client_msg_id,
    )
