"""WebSocket wire contract: a closed set of tagged event frames.

Every frame is ``{"event": <name>, "data": {...}}`` with camelCase payloads.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from messaging_service.domain.entities.message import Message


class _Payload(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---- client -> server ----


class ConversationRef(_Payload):
    conversation_id: int = Field(gt=0)


class NewMessageIn(_Payload):
    # presence is checked by the send path so it can answer with an error event
    conversation_id: int | None = None
    sender_id: int | None = None
    content: str | None = None
    client_msg_id: UUID | None = None


class TypingIn(_Payload):
    conversation_id: int = Field(gt=0)
    user_id: int | None = None


class MessageReadIn(_Payload):
    conversation_id: int = Field(gt=0)
    message_id: int | None = None


class JoinConversation(BaseModel):
    event: Literal["join_conversation"]
    data: ConversationRef


class LeaveConversation(BaseModel):
    event: Literal["leave_conversation"]
    data: ConversationRef


class SendNewMessage(BaseModel):
    event: Literal["new_message"]
    data: NewMessageIn


class UserTyping(BaseModel):
    event: Literal["user_typing"]
    data: TypingIn


class UserStoppedTyping(BaseModel):
    event: Literal["user_stopped_typing"]
    data: TypingIn


class MessageRead(BaseModel):
    event: Literal["message_read"]
    data: MessageReadIn


class Ping(BaseModel):
    event: Literal["ping"]
    data: dict[str, Any] = {}


InboundFrame = Annotated[
    Union[
        JoinConversation,
        LeaveConversation,
        SendNewMessage,
        UserTyping,
        UserStoppedTyping,
        MessageRead,
        Ping,
    ],
    Field(discriminator="event"),
]

_inbound = TypeAdapter(InboundFrame)

INBOUND_EVENTS = frozenset(
    {
        "join_conversation",
        "leave_conversation",
        "new_message",
        "user_typing",
        "user_stopped_typing",
        "message_read",
        "ping",
    }
)
TYPING_EVENTS = frozenset({"user_typing", "user_stopped_typing"})


class ProtocolError(ValueError):
    def __init__(self, event: str | None, reason: str) -> None:
        self.event = event
        self.reason = reason
        super().__init__(reason)


class _Envelope(BaseModel):
    event: str
    data: Any = None


def parse_inbound(raw: str | bytes) -> InboundFrame:
    """Validate a raw frame. Raises ProtocolError for unknown or malformed frames."""
    try:
        envelope = _Envelope.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise ProtocolError(None, "Invalid frame") from exc

    if envelope.event not in INBOUND_EVENTS:
        raise ProtocolError(envelope.event, f"Unknown event: {envelope.event}")

    try:
        return _inbound.validate_python(
            {"event": envelope.event, "data": envelope.data or {}}
        )
    except PydanticValidationError as exc:
        raise ProtocolError(envelope.event, f"Invalid payload for {envelope.event}") from exc


# ---- server -> client ----


class MessageOut(_Payload):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    read: bool
    created_at: datetime

    @classmethod
    def from_entity(cls, message: Message) -> MessageOut:
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            content=message.content,
            read=message.read,
            created_at=message.created_at,
        )


class TypingOut(_Payload):
    user_id: int
    conversation_id: int


class ReadReceiptOut(_Payload):
    message_id: int | None
    conversation_id: int
    read_by: int


class NotificationOut(_Payload):
    type: str
    conversation: int


class ErrorOut(_Payload):
    message: str


def dump(payload: _Payload) -> dict[str, Any]:
    return payload.model_dump(mode="json", by_alias=True)
