from __future__ import annotations

from datetime import datetime
from typing import Protocol

from messaging_service.application.dto.notification import NotificationDraft
from messaging_service.domain.entities.notification import Notification


class NotificationReader(Protocol):
    async def get_by_id(self, notification_id: int) -> Notification | None: ...

    async def list_for_user(self, user_id: int) -> list[Notification]:
        """Newest first."""
        ...

    async def count_unread(self, user_id: int) -> int: ...


class NotificationWriter(Protocol):
    async def create(self, draft: NotificationDraft, ts: datetime) -> Notification: ...

    async def mark_read(self, notification_id: int) -> None: ...

    async def mark_all_read(self, user_id: int) -> int: ...
