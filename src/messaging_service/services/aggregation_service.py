"""Read-side joins for the conversation list and unread badges."""
from __future__ import annotations

from messaging_service.application.dto.conversation import (
    ConversationView,
    ParticipantView,
    UnreadSummary,
)
from messaging_service.application.uow import UnitOfWork


async def list_conversations_for_user(
    user_id: int,
    uow: UnitOfWork,
) -> list[ConversationView]:
    conversations = await uow.conversations.list_for_user(user_id)

    memberships = {
        c.id: await uow.participants.list_participants(c.id) for c in conversations
    }
    user_ids = {p.user_id for members in memberships.values() for p in members}
    users = await uow.users.get_many(user_ids)

    views: list[ConversationView] = []
    for conversation in conversations:
        participants: list[ParticipantView] = []
        for member in memberships[conversation.id]:
            user = users.get(member.user_id)
            participants.append(
                ParticipantView(
                    user_id=member.user_id,
                    display_name=user.display_name if user else f"User {member.user_id}",
                    avatar_url=user.profile_picture if user else None,
                    joined_at=member.joined_at,
                )
            )
        views.append(
            ConversationView(
                id=conversation.id,
                property_id=conversation.property_id,
                last_message_at=conversation.last_message_at,
                created_at=conversation.created_at,
                participants=participants,
                last_message=await uow.messages.last_message(conversation.id),
                unread_count=await uow.messages.count_unread_in_conversation(
                    conversation.id, user_id,
                ),
            )
        )

    views.sort(key=lambda v: v.last_message_at, reverse=True)
    return views


async def unread_summary(user_id: int, uow: UnitOfWork) -> UnreadSummary:
    return UnreadSummary(
        messages=await uow.messages.count_unread_for_user(user_id),
        notifications=await uow.notifications.count_unread(user_id),
    )
