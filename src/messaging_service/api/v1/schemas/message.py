from __future__ import annotations

from datetime import datetime
from uuid import UUID

from messaging_service.api.v1.schemas.common import CamelModel


class SendMessageRequest(CamelModel):
    # emptiness is reported by the service as a 400 with the same message
    # the realtime path uses
    content: str | None = None
    sender_id: int | None = None
    client_msg_id: UUID | None = None


class MessageResponse(CamelModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    read: bool
    created_at: datetime


class MarkReadRequest(CamelModel):
    user_id: int | None = None
