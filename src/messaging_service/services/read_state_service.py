from __future__ import annotations

import logging

from messaging_service.application.exceptions import NotFoundError, ValidationError
from messaging_service.application.uow import UnitOfWork

logger = logging.getLogger(__name__)


async def mark_conversation_read(
    conversation_id: int,
    reader_id: int | None,
    uow: UnitOfWork,
) -> int:
    """Mark every message the reader did not send as read. Never unmarks."""
    if not reader_id:
        raise ValidationError("User ID is required")

    conversation = await uow.conversations.get_by_id(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")

    changed = await uow.messages_w.mark_conversation_read(conversation_id, reader_id)
    await uow.commit()
    if changed:
        logger.debug(
            "User %d read %d message(s) in conversation %d",
            reader_id, changed, conversation_id,
        )
    return changed
