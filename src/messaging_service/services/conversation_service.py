from __future__ import annotations

import logging
from typing import Awaitable, Callable
from uuid import UUID

from messaging_service.application.dto.conversation import ConversationDetail, SendResult
from messaging_service.application.exceptions import NotFoundError, ValidationError
from messaging_service.application.ports.clock import Clock, SystemClock
from messaging_service.application.uow import UnitOfWork
from messaging_service.domain.entities.conversation import Conversation
from messaging_service.services import message_service

logger = logging.getLogger(__name__)

_clock: Clock = SystemClock()

SendCall = Callable[[], Awaitable[SendResult]]
Submit = Callable[[int, SendCall], Awaitable[SendResult]]


async def _submit_directly(conversation_id: int, send: SendCall) -> SendResult:
    return await send()


async def get_or_create_conversation(
    user_id: int,
    receiver_id: int,
    property_id: int | None,
    uow: UnitOfWork,
    *,
    clock: Clock = _clock,
) -> tuple[Conversation, bool]:
    """Return the pair's conversation about a property, creating it if needed.

    Returns (conversation, created). Does not commit; the first message send
    commits the conversation together with its participants.
    """
    existing = await uow.conversations.find_between(
        user_id, receiver_id, property_id=property_id,
    )
    if existing is not None:
        return existing, False

    now = clock.now()
    conversation = await uow.conversations_w.create(property_id, now)
    await uow.participants_w.add(conversation.id, user_id, now)
    await uow.participants_w.add(conversation.id, receiver_id, now)
    await uow.flush()

    logger.info(
        "Created conversation %d for users %d and %d (property=%s)",
        conversation.id, user_id, receiver_id, property_id,
    )
    return conversation, True


async def start_conversation(
    user_id: int | None,
    receiver_id: int | None,
    property_id: int | None,
    content: str | None,
    uow: UnitOfWork,
    *,
    client_msg_id: UUID | None = None,
    clock: Clock = _clock,
    submit: Submit = _submit_directly,
) -> tuple[Conversation, SendResult]:
    """Get-or-create the conversation and send its opening message.

    ``submit`` wraps the send step; the realtime hub passes its sequenced
    accept path so the opening message is broadcast like any other.
    """
    if not user_id or not receiver_id or not property_id or not content:
        raise ValidationError("Missing required fields")
    if user_id == receiver_id:
        raise ValidationError("Cannot start a conversation with yourself")

    conversation, _created = await get_or_create_conversation(
        user_id, receiver_id, property_id, uow, clock=clock,
    )
    result = await submit(
        conversation.id,
        lambda: message_service.send_message(
            conversation.id, user_id, content, uow,
            client_msg_id=client_msg_id, clock=clock,
        ),
    )
    refreshed = await uow.conversations.get_by_id(conversation.id)
    return refreshed or conversation, result


async def get_conversation_detail(
    conversation_id: int,
    uow: UnitOfWork,
    *,
    history_limit: int | None = None,
) -> ConversationDetail:
    conversation = await uow.conversations.get_by_id(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")

    participants = await uow.participants.list_participants(conversation_id)
    messages = await uow.messages.list_messages(conversation_id, limit=history_limit)
    return ConversationDetail(
        conversation=conversation,
        participants=participants,
        messages=messages,
    )
