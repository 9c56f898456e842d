from __future__ import annotations

from datetime import datetime
from uuid import UUID

from messaging_service.api.v1.schemas.common import CamelModel
from messaging_service.api.v1.schemas.message import MessageResponse


class ParticipantResponse(CamelModel):
    user_id: int
    display_name: str | None = None
    avatar_url: str | None = None
    joined_at: datetime | None = None


class ConversationResponse(CamelModel):
    id: int
    property_id: int | None
    last_message_at: datetime
    created_at: datetime


class ConversationSummaryResponse(ConversationResponse):
    participants: list[ParticipantResponse]
    last_message: MessageResponse | None
    unread_count: int


class ConversationDetailResponse(ConversationResponse):
    participants: list[ParticipantResponse]
    messages: list[MessageResponse]


class CreateConversationRequest(CamelModel):
    user_id: int | None = None
    receiver_id: int | None = None
    property_id: int | None = None
    message: str | None = None
    client_msg_id: UUID | None = None


class CreateConversationResponse(CamelModel):
    conversation: ConversationResponse
    message: MessageResponse


class UnreadCountsResponse(CamelModel):
    messages: int
    notifications: int
