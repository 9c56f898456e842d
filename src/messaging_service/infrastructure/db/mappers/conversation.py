from __future__ import annotations

from messaging_service.domain.entities.conversation import Conversation
from messaging_service.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=model.id,
        property_id=model.property_id,
        last_message_at=model.last_message_at,
        created_at=model.created_at,
    )
