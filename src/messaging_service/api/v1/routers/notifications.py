from __future__ import annotations

from fastapi import APIRouter, Query

from messaging_service.api.deps import UoWDep
from messaging_service.api.v1.schemas.common import SuccessResponse
from messaging_service.api.v1.schemas.conversation import UnreadCountsResponse
from messaging_service.api.v1.schemas.notification import (
    MarkAllReadRequest,
    NotificationResponse,
)
from messaging_service.application.deadline import persistence_deadline
from messaging_service.config import settings
from messaging_service.services import aggregation_service, notification_service

router = APIRouter(prefix="/api", tags=["notifications"])


@router.get("/notifications", response_model=list[NotificationResponse])
async def list_notifications(
    uow: UoWDep,
    user_id: int = Query(..., alias="userId", gt=0),
) -> list[NotificationResponse]:
    async with persistence_deadline(settings.PERSISTENCE_TIMEOUT_SECONDS):
        items = await notification_service.list_notifications(user_id, uow)
    return [NotificationResponse.model_validate(n) for n in items]


@router.put("/notifications/read-all", response_model=SuccessResponse)
async def mark_all_notifications_read(
    body: MarkAllReadRequest,
    uow: UoWDep,
) -> SuccessResponse:
    async with persistence_deadline(settings.PERSISTENCE_TIMEOUT_SECONDS):
        await notification_service.mark_all_read(body.user_id, uow)
    return SuccessResponse()


@router.put("/notifications/{notification_id}/read", response_model=SuccessResponse)
async def mark_notification_read(
    notification_id: int,
    uow: UoWDep,
) -> SuccessResponse:
    async with persistence_deadline(settings.PERSISTENCE_TIMEOUT_SECONDS):
        await notification_service.mark_read(notification_id, uow)
    return SuccessResponse()


@router.get("/unread-counts", response_model=UnreadCountsResponse)
async def unread_counts(
    uow: UoWDep,
    user_id: int = Query(..., alias="userId", gt=0),
) -> UnreadCountsResponse:
    async with persistence_deadline(settings.PERSISTENCE_TIMEOUT_SECONDS):
        summary = await aggregation_service.unread_summary(user_id, uow)
    return UnreadCountsResponse.model_validate(summary)
