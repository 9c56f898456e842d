from __future__ import annotations

from fastapi import APIRouter, Query

from messaging_service.api.deps import HubDep, UoWDep
from messaging_service.api.v1.schemas.common import SuccessResponse
from messaging_service.api.v1.schemas.conversation import (
    ConversationDetailResponse,
    ConversationResponse,
    ConversationSummaryResponse,
    CreateConversationRequest,
    CreateConversationResponse,
    ParticipantResponse,
)
from messaging_service.api.v1.schemas.message import (
    MarkReadRequest,
    MessageResponse,
    SendMessageRequest,
)
from messaging_service.application.deadline import persistence_deadline
from messaging_service.config import settings
from messaging_service.services import (
    aggregation_service,
    conversation_service,
    message_service,
    read_state_service,
)

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.get("", response_model=list[ConversationSummaryResponse])
async def list_conversations(
    uow: UoWDep,
    user_id: int = Query(..., alias="userId", gt=0),
) -> list[ConversationSummaryResponse]:
    async with persistence_deadline(settings.PERSISTENCE_TIMEOUT_SECONDS):
        views = await aggregation_service.list_conversations_for_user(user_id, uow)
    return [ConversationSummaryResponse.model_validate(v) for v in views]


@router.get("/{conversation_id}", response_model=ConversationDetailResponse)
async def get_conversation(
    conversation_id: int,
    uow: UoWDep,
) -> ConversationDetailResponse:
    async with persistence_deadline(settings.PERSISTENCE_TIMEOUT_SECONDS):
        detail = await conversation_service.get_conversation_detail(
            conversation_id, uow, history_limit=settings.HISTORY_LIMIT,
        )
    conv = detail.conversation
    return ConversationDetailResponse(
        id=conv.id,
        property_id=conv.property_id,
        last_message_at=conv.last_message_at,
        created_at=conv.created_at,
        participants=[ParticipantResponse.model_validate(p) for p in detail.participants],
        messages=[MessageResponse.model_validate(m) for m in detail.messages],
    )


@router.post("", response_model=CreateConversationResponse, status_code=201)
async def create_conversation(
    body: CreateConversationRequest,
    uow: UoWDep,
    hub: HubDep,
) -> CreateConversationResponse:
    async with persistence_deadline(settings.PERSISTENCE_TIMEOUT_SECONDS):
        conv, result = await conversation_service.start_conversation(
            body.user_id,
            body.receiver_id,
            body.property_id,
            body.message,
            uow,
            client_msg_id=body.client_msg_id,
            submit=hub.accept,
        )
    return CreateConversationResponse(
        conversation=ConversationResponse.model_validate(conv),
        message=MessageResponse.model_validate(result.message),
    )


@router.post("/{conversation_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    conversation_id: int,
    body: SendMessageRequest,
    uow: UoWDep,
    hub: HubDep,
) -> MessageResponse:
    content = message_service.validate_send(conversation_id, body.sender_id, body.content)
    sender_id = body.sender_id
    assert sender_id is not None

    result = await hub.accept(
        conversation_id,
        lambda: message_service.send_message(
            conversation_id, sender_id, content, uow,
            client_msg_id=body.client_msg_id,
        ),
    )
    return MessageResponse.model_validate(result.message)


@router.put("/{conversation_id}/read", response_model=SuccessResponse)
async def mark_conversation_read(
    conversation_id: int,
    body: MarkReadRequest,
    uow: UoWDep,
) -> SuccessResponse:
    async with persistence_deadline(settings.PERSISTENCE_TIMEOUT_SECONDS):
        await read_state_service.mark_conversation_read(conversation_id, body.user_id, uow)
    return SuccessResponse()
