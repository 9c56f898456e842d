from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio

from messaging_service.application.ports.clock import from_millis
from messaging_service.client.realtime import (
    ClientMessage,
    RealtimeClient,
    TypingStatus,
    entry_key,
)
from messaging_service.domain.value_objects.enums import ClientState
from tests.conftest import FakeStreamStore


@pytest.fixture
def store() -> FakeStreamStore:
    return FakeStreamStore()


@pytest_asyncio.fixture
async def client(store):
    client = RealtimeClient(store, block_ms=20, reconnect_delay=0.01)
    await client.initialize(1)
    yield client
    await client.cleanup()


async def _until(predicate, timeout: float = 1.0) -> None:
    async def _wait():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_wait(), timeout)


@pytest.mark.asyncio
async def test_initialize_connects(store):
    client = RealtimeClient(store)

    assert client.state is ClientState.DISCONNECTED
    assert await client.initialize(1) is True
    assert client.state is ClientState.CONNECTED
    assert client.user_id == 1
    assert await client.initialize(1) is True


@pytest.mark.asyncio
async def test_initialize_unreachable_store(store):
    store.down = True
    client = RealtimeClient(store)

    assert await client.initialize(1) is False
    assert client.state is ClientState.DISCONNECTED
    assert client.user_id is None


@pytest.mark.asyncio
async def test_send_message_returns_store_id(client, store):
    msg = await client.send_message(5, 1, "hello")

    assert isinstance(msg, ClientMessage)
    assert msg.content == "hello"
    assert msg.read is False
    assert msg.client_timestamp is not None
    (entry_id, fields) = store.streams["chat:conversations:5:messages"][0]
    assert msg.id == entry_id
    assert fields["senderId"] == "1"
    assert store.hashes["chat:conversations:5"]["lastClientTimestamp"] == msg.client_timestamp


@pytest.mark.asyncio
@pytest.mark.parametrize("conversation_id, sender_id, content", [
    (None, 1, "hi"), (5, None, "hi"), (5, 1, ""),
])
async def test_send_message_missing_fields(client, store, conversation_id, sender_id, content):
    assert await client.send_message(conversation_id, sender_id, content) is None
    assert store.streams == {}


@pytest.mark.asyncio
async def test_send_requires_identity(store):
    client = RealtimeClient(store)
    assert await client.send_message(5, 1, "hi") is None


@pytest.mark.asyncio
async def test_send_transport_error_returns_none(client, store):
    store.down = True
    assert await client.send_message(5, 1, "hi") is None


@pytest.mark.asyncio
async def test_replay_then_live_exactly_once(client, store):
    first = await client.send_message(5, 1, "one")
    second = await client.send_message(5, 2, "two")
    store.duplicate_reads = True
    received: list[str] = []

    sub = await client.subscribe_to_messages(5, lambda m: received.append(m.id))
    assert received == [first.id, second.id]

    third = await client.send_message(5, 1, "three")
    await _until(lambda: len(received) == 3)
    await asyncio.sleep(0.05)

    assert received == [first.id, second.id, third.id]
    sub.cancel()
    sub.cancel()
    assert 5 not in client._message_feeds


@pytest.mark.asyncio
async def test_second_listener_gets_its_own_replay(client):
    await client.send_message(5, 1, "one")
    a: list[str] = []
    b: list[str] = []

    await client.subscribe_to_messages(5, lambda m: a.append(m.content))
    await client.send_message(5, 1, "two")
    await _until(lambda: a == ["one", "two"])

    async def async_listener(m: ClientMessage) -> None:
        b.append(m.content)

    await client.subscribe_to_messages(5, async_listener)

    assert b == ["one", "two"]


@pytest.mark.asyncio
async def test_reconnect_replays_without_duplicates(client, store):
    await client.send_message(5, 1, "one")
    received: list[str] = []
    await client.subscribe_to_messages(5, lambda m: received.append(m.content))

    store.read_failures = 2
    await client.send_message(5, 1, "two")
    await _until(lambda: received == ["one", "two"])
    await client.send_message(5, 1, "three")
    await _until(lambda: received == ["one", "two", "three"])


@pytest.mark.asyncio
async def test_backlog_drains_before_live_messages(client):
    await client.send_message(5, 1, "m1")
    await client.subscribe_to_messages(5, lambda m: None)
    received: list[str] = []

    async def chatty(m: ClientMessage) -> None:
        received.append(m.content)
        if m.content == "m1":
            await client.send_message(5, 2, "m2")
            await client.send_message(5, 2, "m3")
            await asyncio.sleep(0.05)
        elif m.content == "m2":
            await client.send_message(5, 2, "m4")
            await asyncio.sleep(0.1)

    await client.subscribe_to_messages(5, chatty)
    await _until(lambda: len(received) == 4)
    await asyncio.sleep(0.05)

    assert received == ["m1", "m2", "m3", "m4"]


@pytest.mark.asyncio
async def test_repeat_delivery_tracked_by_last_id(client, store):
    await client.send_message(5, 1, "one")
    store.duplicate_reads = True
    received: list[str] = []
    await client.subscribe_to_messages(5, lambda m: received.append(m.id))

    last = await client.send_message(5, 1, "two")
    await _until(lambda: len(received) == 2)
    await asyncio.sleep(0.05)

    (listener,) = client._message_feeds[5].listeners
    assert listener.last_id == last.id
    assert received[-1] == last.id
    assert len(received) == 2


@pytest.mark.asyncio
async def test_last_activity_reads_conversation_metadata(client):
    assert await client.last_activity(5) is None

    msg = await client.send_message(5, 1, "hello")
    seen_at = await client.last_activity(5)

    assert seen_at == from_millis(entry_key(msg.id)[0])


@pytest.mark.asyncio
async def test_failing_listener_does_not_stop_others(client):
    good: list[str] = []

    def broken(_m: ClientMessage) -> None:
        raise RuntimeError("boom")

    await client.subscribe_to_messages(5, broken)
    await client.subscribe_to_messages(5, lambda m: good.append(m.content))
    await client.send_message(5, 1, "hello")

    await _until(lambda: good == ["hello"])


@pytest.mark.asyncio
async def test_unsubscribe_specific_callback(client):
    a: list[str] = []
    b: list[str] = []

    def cb_b(m: ClientMessage) -> None:
        b.append(m.content)

    await client.subscribe_to_messages(5, lambda m: a.append(m.content))
    await client.subscribe_to_messages(5, cb_b)
    client.unsubscribe_from_messages(5, cb_b)
    await client.send_message(5, 1, "hello")

    await _until(lambda: a == ["hello"])
    assert b == []


@pytest.mark.asyncio
async def test_typing_filters_own_events(store, client):
    other = RealtimeClient(store, block_ms=20, reconnect_delay=0.01)
    await other.initialize(2)
    seen: list[TypingStatus] = []

    await client.subscribe_to_typing_status(5, seen.append)
    await client.set_typing_status(5, True)
    await other.set_typing_status(5, True)
    await other.set_typing_status(5, False)

    await _until(lambda: len(seen) == 2)
    assert seen == [TypingStatus(user_id=2, is_typing=True), TypingStatus(user_id=2, is_typing=False)]
    await other.cleanup()


@pytest.mark.asyncio
async def test_read_flags_merged_into_history(client):
    first = await client.send_message(5, 2, "one")
    await client.send_message(5, 2, "two")

    await client.mark_message_as_read(5, first.id)
    history = await client.get_conversation_messages(5)

    assert [(m.content, m.read) for m in history] == [("one", True), ("two", False)]
    assert history[0].created_at <= history[1].created_at


@pytest.mark.asyncio
async def test_history_empty_on_error(client, store):
    await client.send_message(5, 1, "one")
    store.down = True

    assert await client.get_conversation_messages(5) == []


@pytest.mark.asyncio
async def test_cleanup_is_idempotent(client):
    await client.subscribe_to_messages(5, lambda m: None)
    await client.subscribe_to_typing_status(5, lambda s: None)
    tasks = [f.task for f in (*client._message_feeds.values(), *client._typing_feeds.values())]

    await client.cleanup()
    await client.cleanup()

    assert all(t.done() for t in tasks)
    assert client.user_id is None
    assert client.state is ClientState.DISCONNECTED


@pytest.mark.asyncio
async def test_initialize_as_other_user_cleans_up(client):
    await client.subscribe_to_messages(5, lambda m: None)

    assert await client.initialize(2) is True

    assert client.user_id == 2
    assert client._message_feeds == {}
