from __future__ import annotations

import pytest

from messaging_service.application.dto.notification import NotificationDraft
from messaging_service.application.exceptions import NotFoundError, ValidationError
from messaging_service.services import notification_service


async def _create(uow, clock, user_id: int, content: str = "hi"):
    return await uow.notifications_w.create(NotificationDraft(user_id=user_id, content=content), clock.now())


@pytest.mark.asyncio
async def test_list_newest_first(uow, clock):
    first = await _create(uow, clock, 1, "first")
    second = await _create(uow, clock, 1, "second")
    await _create(uow, clock, 2, "other user")

    items = await notification_service.list_notifications(1, uow)

    assert [n.id for n in items] == [second.id, first.id]


@pytest.mark.asyncio
async def test_mark_read(uow, clock):
    n = await _create(uow, clock, 1)

    await notification_service.mark_read(n.id, uow)

    assert (await uow.notifications.get_by_id(n.id)).read is True
    assert uow.commits == 1


@pytest.mark.asyncio
async def test_mark_read_already_read_is_noop(uow, clock):
    n = await _create(uow, clock, 1)
    await notification_service.mark_read(n.id, uow)

    await notification_service.mark_read(n.id, uow)

    assert uow.commits == 1


@pytest.mark.asyncio
async def test_mark_read_unknown(uow):
    with pytest.raises(NotFoundError):
        await notification_service.mark_read(404, uow)


@pytest.mark.asyncio
async def test_mark_all_read(uow, clock):
    await _create(uow, clock, 1)
    await _create(uow, clock, 1)
    other = await _create(uow, clock, 2)

    changed = await notification_service.mark_all_read(1, uow)

    assert changed == 2
    assert await uow.notifications.count_unread(1) == 0
    assert (await uow.notifications.get_by_id(other.id)).read is False


@pytest.mark.asyncio
async def test_mark_all_read_requires_user(uow):
    with pytest.raises(ValidationError):
        await notification_service.mark_all_read(None, uow)
