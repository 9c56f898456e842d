from __future__ import annotations

from messaging_service.application.exceptions import NotFoundError, ValidationError
from messaging_service.application.uow import UnitOfWork
from messaging_service.domain.entities.notification import Notification


async def list_notifications(user_id: int, uow: UnitOfWork) -> list[Notification]:
    return await uow.notifications.list_for_user(user_id)


async def mark_read(notification_id: int, uow: UnitOfWork) -> None:
    notification = await uow.notifications.get_by_id(notification_id)
    if notification is None:
        raise NotFoundError("Notification not found")
    if notification.read:
        return
    await uow.notifications_w.mark_read(notification_id)
    await uow.commit()


async def mark_all_read(user_id: int | None, uow: UnitOfWork) -> int:
    if not user_id:
        raise ValidationError("User ID is required")
    changed = await uow.notifications_w.mark_all_read(user_id)
    await uow.commit()
    return changed
