from __future__ import annotations

from datetime import timedelta

import pytest

from messaging_service.services import aggregation_service
from tests.conftest import T0, make_user, seed_conversation, seed_message


@pytest.mark.asyncio
async def test_conversation_view_joins_users_and_counts(uow):
    uow.db.users[1] = make_user(1, "Ana", "Diaz", picture="https://img/ana.png")
    uow.db.users[2] = make_user(2, email="sam@example.com")
    conv = seed_conversation(uow, members=(1, 2))
    seed_message(uow, conv.id, 2, "first", ts=T0 + timedelta(seconds=1))
    last = seed_message(uow, conv.id, 2, "second", ts=T0 + timedelta(seconds=2))
    seed_message(uow, conv.id, 1, "reply", read=False, ts=T0)

    (view,) = await aggregation_service.list_conversations_for_user(1, uow)

    assert view.id == conv.id
    assert view.last_message == last
    assert view.unread_count == 2
    names = {p.user_id: (p.display_name, p.avatar_url) for p in view.participants}
    assert names[1] == ("Ana Diaz", "https://img/ana.png")
    assert names[2] == ("sam", None)


@pytest.mark.asyncio
async def test_empty_conversation_has_no_last_message(uow):
    seed_conversation(uow, members=(1, 2))

    (view,) = await aggregation_service.list_conversations_for_user(1, uow)

    assert view.last_message is None
    assert view.unread_count == 0


@pytest.mark.asyncio
async def test_unknown_user_falls_back_to_placeholder_name(uow):
    seed_conversation(uow, members=(1, 2))

    (view,) = await aggregation_service.list_conversations_for_user(1, uow)

    assert {p.display_name for p in view.participants} == {"User 1", "User 2"}


@pytest.mark.asyncio
async def test_ordered_by_last_activity(uow):
    older = seed_conversation(uow, members=(1, 2), ts=T0)
    newer = seed_conversation(uow, members=(1, 3), ts=T0 + timedelta(hours=1))
    seed_conversation(uow, members=(2, 3), ts=T0 + timedelta(hours=2))

    views = await aggregation_service.list_conversations_for_user(1, uow)

    assert [v.id for v in views] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_no_conversations(uow):
    assert await aggregation_service.list_conversations_for_user(1, uow) == []
    summary = await aggregation_service.unread_summary(1, uow)
    assert (summary.messages, summary.notifications) == (0, 0)
