from __future__ import annotations

from messaging_service.application.exceptions import ForbiddenError, NotFoundError
from messaging_service.application.repositories.participant import ParticipantReader
from messaging_service.domain.entities.conversation import Conversation


async def assert_participant(
    user_id: int,
    conversation: Conversation | None,
    participants: ParticipantReader,
) -> Conversation:
    """Raise if conversation doesn't exist or the user is not a member of it."""
    if conversation is None:
        raise NotFoundError("Conversation not found")

    is_member = await participants.is_participant(conversation.id, user_id)
    if not is_member:
        raise ForbiddenError("Sender is not a participant of this conversation")

    return conversation
