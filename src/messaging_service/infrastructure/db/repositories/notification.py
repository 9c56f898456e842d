from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from messaging_service.application.dto.notification import NotificationDraft
from messaging_service.domain.entities.notification import Notification
from messaging_service.infrastructure.db.mappers import notification as mapper
from messaging_service.infrastructure.db.models.notification import NotificationModel


class NotificationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, notification_id: int) -> Notification | None:
        result = await self._session.get(NotificationModel, notification_id)
        return mapper.model_to_entity(result) if result else None

    async def list_for_user(self, user_id: int) -> list[Notification]:
        stmt = (
            select(NotificationModel)
            .where(NotificationModel.user_id == user_id)
            .order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc())
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def count_unread(self, user_id: int) -> int:
        stmt = select(func.count(NotificationModel.id)).where(
            NotificationModel.user_id == user_id,
            NotificationModel.read.is_(False),
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class NotificationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, draft: NotificationDraft, ts: datetime) -> Notification:
        model = mapper.draft_to_model(draft)
        model.created_at = ts
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def mark_read(self, notification_id: int) -> None:
        stmt = (
            update(NotificationModel)
            .where(NotificationModel.id == notification_id)
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def mark_all_read(self, user_id: int) -> int:
        stmt = (
            update(NotificationModel)
            .where(
                NotificationModel.user_id == user_id,
                NotificationModel.read.is_(False),
            )
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0
