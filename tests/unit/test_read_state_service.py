from __future__ import annotations

import pytest

from messaging_service.application.exceptions import NotFoundError, ValidationError
from messaging_service.services import aggregation_service, message_service, read_state_service
from tests.conftest import seed_conversation, seed_message


@pytest.mark.asyncio
async def test_marks_only_messages_from_others(uow):
    conv = seed_conversation(uow, members=(1, 2))
    mine = seed_message(uow, conv.id, 1, "mine")
    theirs = seed_message(uow, conv.id, 2, "theirs")

    changed = await read_state_service.mark_conversation_read(conv.id, 1, uow)

    assert changed == 1
    by_id = {m.id: m for m in uow.db.messages}
    assert by_id[theirs.id].read is True
    assert by_id[mine.id].read is False
    assert uow._committed is True


@pytest.mark.asyncio
async def test_read_never_reverts(uow):
    conv = seed_conversation(uow, members=(1, 2))
    seed_message(uow, conv.id, 2, "old", read=True)
    seed_message(uow, conv.id, 2, "new")

    assert await read_state_service.mark_conversation_read(conv.id, 1, uow) == 1
    assert await read_state_service.mark_conversation_read(conv.id, 1, uow) == 0
    assert all(m.read for m in uow.db.messages)


@pytest.mark.asyncio
async def test_missing_user_rejected(uow):
    conv = seed_conversation(uow)
    with pytest.raises(ValidationError):
        await read_state_service.mark_conversation_read(conv.id, None, uow)


@pytest.mark.asyncio
async def test_unknown_conversation(uow):
    with pytest.raises(NotFoundError):
        await read_state_service.mark_conversation_read(404, 1, uow)


@pytest.mark.asyncio
async def test_unread_counts_follow_sends_and_reads(uow, clock):
    conv = seed_conversation(uow, members=(1, 2))
    for text in ("one", "two", "three"):
        await message_service.send_message(conv.id, 2, text, uow, clock=clock)

    before = await aggregation_service.unread_summary(1, uow)
    await read_state_service.mark_conversation_read(conv.id, 1, uow)
    after = await aggregation_service.unread_summary(1, uow)

    assert before.messages == 3
    assert before.notifications == 3
    assert after.messages == 0
    # reading a conversation leaves the notification inbox alone
    assert after.notifications == 3
    sender_view = await aggregation_service.unread_summary(2, uow)
    assert sender_view.messages == 0
