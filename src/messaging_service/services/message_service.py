from __future__ import annotations

import logging
from uuid import UUID

from messaging_service.application.dto.conversation import SendResult
from messaging_service.application.exceptions import NotFoundError, ValidationError
from messaging_service.application.policies.permissions import assert_participant
from messaging_service.application.ports.clock import Clock, SystemClock
from messaging_service.application.uow import UnitOfWork
from messaging_service.domain.entities.message import Message
from messaging_service.services.notification_dispatch import plan_dispatch

logger = logging.getLogger(__name__)

_clock: Clock = SystemClock()


def validate_send(
    conversation_id: int | None,
    sender_id: int | None,
    content: str | None,
) -> str:
    if not conversation_id or not sender_id or not content or not content.strip():
        raise ValidationError("Missing required fields for message")
    return content


async def send_message(
    conversation_id: int,
    sender_id: int,
    content: str,
    uow: UnitOfWork,
    *,
    client_msg_id: UUID | None = None,
    clock: Clock = _clock,
) -> SendResult:
    """Persist a message and its notifications in one unit of work.

    Returns what the realtime layer still has to do once the commit has
    succeeded. A retried send carrying the same ``client_msg_id`` returns the
    stored message with ``created=False`` and nothing to push.
    """
    content = validate_send(conversation_id, sender_id, content)

    conversation = await uow.conversations.get_by_id(conversation_id)
    await assert_participant(sender_id, conversation, uow.participants)

    now = clock.now()
    msg, created = await uow.messages_w.append(
        conversation_id, sender_id, content, now, client_msg_id=client_msg_id,
    )
    if not created:
        logger.info(
            "Duplicate send %s in conversation %d, returning message %d",
            client_msg_id, conversation_id, msg.id,
        )
        return SendResult(message=msg, created=False)

    await uow.conversations_w.touch_last_message_at(conversation_id, msg.created_at)

    participants = await uow.participants.list_participants(conversation_id)
    plan = plan_dispatch(msg, participants)
    for draft in plan.notifications:
        await uow.notifications_w.create(draft, now)

    await uow.commit()
    return SendResult(message=msg, created=True, pushes=plan.pushes)


async def list_messages(
    conversation_id: int,
    uow: UnitOfWork,
    *,
    limit: int | None = None,
) -> list[Message]:
    conversation = await uow.conversations.get_by_id(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return await uow.messages.list_messages(conversation_id, limit=limit)
