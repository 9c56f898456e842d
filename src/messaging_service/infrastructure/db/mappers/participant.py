from __future__ import annotations

from messaging_service.domain.entities.participant import Participant
from messaging_service.infrastructure.db.models.participant import ParticipantModel


def model_to_entity(model: ParticipantModel) -> Participant:
    return Participant(
        id=model.id,
        conversation_id=model.conversation_id,
        user_id=model.user_id,
        joined_at=model.joined_at,
    )
