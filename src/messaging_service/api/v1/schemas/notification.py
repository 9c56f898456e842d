from __future__ import annotations

from datetime import datetime

from messaging_service.api.v1.schemas.common import CamelModel


class NotificationResponse(CamelModel):
    id: int
    user_id: int
    type: str
    title: str
    content: str
    related_id: int | None
    related_type: str | None
    read: bool
    created_at: datetime


class MarkAllReadRequest(CamelModel):
    user_id: int | None = None
