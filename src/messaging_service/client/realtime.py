"""Client-side realtime adapter over an append-only stream store.

Mirrors what a browser client does against the realtime substrate: send
optimistic messages, follow a conversation's message feed with replay, and
exchange typing and read signals. Public methods never raise; failures are
logged and reported as ``None`` / ``[]`` / ``False``.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

from messaging_service.application.ports.clock import Clock, SystemClock, from_millis
from messaging_service.application.ports.stream import StreamEntry, StreamStore
from messaging_service.domain.value_objects.enums import ClientState

if TYPE_CHECKING:
    from messaging_service.config import Settings

logger = logging.getLogger(__name__)

START_ID = "0-0"


@dataclass(frozen=True, slots=True)
class ClientMessage:
    id: str
    conversation_id: int
    sender_id: int
    content: str
    read: bool
    created_at: datetime
    client_timestamp: str | None = None


@dataclass(frozen=True, slots=True)
class TypingStatus:
    user_id: int
    is_typing: bool


MessageCallback = Callable[[ClientMessage], Union[Awaitable[None], None]]
TypingCallback = Callable[[TypingStatus], Union[Awaitable[None], None]]


def entry_key(entry_id: str) -> tuple[int, int]:
    ms, _, seq = entry_id.partition("-")
    return int(ms), int(seq or 0)


@dataclass(eq=False)
class _MessageListener:
    callback: MessageCallback
    last_id: str | None = None
    replaying: bool = True
    backlog: list[ClientMessage] = field(default_factory=list)


@dataclass(eq=False)
class _TypingListener:
    callback: TypingCallback


@dataclass(eq=False)
class _Feed:
    conversation_id: int
    listeners: list[Any] = field(default_factory=list)
    task: asyncio.Task[None] | None = None


class Subscription:
    """Handle returned by the subscribe calls. ``cancel()`` is idempotent."""

    def __init__(self, cancel: Callable[[], None]) -> None:
        self._cancel: Callable[[], None] | None = cancel

    @property
    def active(self) -> bool:
        return self._cancel is not None

    def cancel(self) -> None:
        if self._cancel is not None:
            cancel, self._cancel = self._cancel, None
            cancel()


class RealtimeClient:
    def __init__(
        self,
        store: StreamStore,
        *,
        prefix: str = "chat",
        block_ms: int = 5000,
        reconnect_delay: float = 5.0,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._prefix = prefix
        self._block_ms = block_ms
        self._reconnect_delay = reconnect_delay
        self._clock = clock or SystemClock()
        self.user_id: int | None = None
        self.state = ClientState.DISCONNECTED
        self._message_feeds: dict[int, _Feed] = {}
        self._typing_feeds: dict[int, _Feed] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> RealtimeClient:
        import redis.asyncio as aioredis

        from messaging_service.infrastructure.bus.redis_streams import RedisStreamStore

        redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
        return cls(
            RedisStreamStore(redis, maxlen=settings.CLIENT_STREAM_MAXLEN),
            prefix=settings.CLIENT_STREAM_PREFIX,
            block_ms=settings.CLIENT_STREAM_BLOCK_MS,
            reconnect_delay=settings.CLIENT_RECONNECT_SECONDS,
        )

    # ---- key paths ----

    def conversation_key(self, conversation_id: int) -> str:
        return f"{self._prefix}:conversations:{conversation_id}"

    def messages_key(self, conversation_id: int) -> str:
        return f"{self.conversation_key(conversation_id)}:messages"

    def typing_key(self, conversation_id: int) -> str:
        return f"{self.conversation_key(conversation_id)}:typing"

    def read_key(self, conversation_id: int) -> str:
        return f"{self.conversation_key(conversation_id)}:read"

    # ---- lifecycle ----

    async def initialize(self, user_id: int) -> bool:
        if self.user_id == user_id and self.state is ClientState.CONNECTED:
            return True
        if self.user_id is not None:
            await self.cleanup()

        self.state = ClientState.CONNECTING
        try:
            await self._store.ping()
        except Exception:
            logger.exception("Realtime store unreachable, user %d not connected", user_id)
            self.state = ClientState.DISCONNECTED
            return False

        self.user_id = user_id
        self.state = ClientState.CONNECTED
        logger.info("Realtime client initialized for user %d", user_id)
        return True

    async def cleanup(self) -> None:
        tasks = [
            feed.task
            for feed in (*self._message_feeds.values(), *self._typing_feeds.values())
            if feed.task is not None
        ]
        for task in tasks:
            task.cancel()
        self._message_feeds.clear()
        self._typing_feeds.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self.user_id is not None:
            logger.info("Realtime client cleaned up for user %d", self.user_id)
        self.user_id = None
        self.state = ClientState.DISCONNECTED

    # ---- messages ----

    async def send_message(
        self,
        conversation_id: int | None,
        sender_id: int | None,
        content: str | None,
    ) -> ClientMessage | None:
        if self.user_id is None:
            logger.error("Cannot send message: user not initialized")
            return None
        if not conversation_id:
            logger.error("Missing conversationId in message")
            return None
        if not sender_id:
            logger.error("Missing senderId in message")
            return None
        if not content:
            logger.error("Missing content in message")
            return None

        now = self._clock.now()
        client_timestamp = now.isoformat()
        try:
            entry_id = await self._store.append(
                self.messages_key(conversation_id),
                {
                    "conversationId": str(conversation_id),
                    "senderId": str(sender_id),
                    "content": content,
                    "read": "0",
                    "clientTimestamp": client_timestamp,
                },
            )
            await self._store.hset(
                self.conversation_key(conversation_id),
                {
                    "lastMessageAt": str(entry_key(entry_id)[0]),
                    "lastClientTimestamp": client_timestamp,
                },
            )
        except Exception:
            logger.exception("Error sending message to conversation %d", conversation_id)
            return None

        # local time for immediate display; replays use the store's timestamp
        return ClientMessage(
            id=entry_id,
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            read=False,
            created_at=now,
            client_timestamp=client_timestamp,
        )

    async def get_conversation_messages(self, conversation_id: int) -> list[ClientMessage]:
        try:
            return await self._load_messages(conversation_id)
        except Exception:
            logger.exception("Error getting messages for conversation %d", conversation_id)
            return []

    async def last_activity(self, conversation_id: int) -> datetime | None:
        """Time of the newest message sent through the store, if any."""
        try:
            meta = await self._store.hgetall(self.conversation_key(conversation_id))
        except Exception:
            logger.exception("Error reading metadata for conversation %d", conversation_id)
            return None
        raw = meta.get("lastMessageAt")
        if not raw:
            return None
        try:
            return from_millis(int(raw))
        except ValueError:
            logger.warning("Bad lastMessageAt %r on conversation %d", raw, conversation_id)
            return None

    async def subscribe_to_messages(
        self,
        conversation_id: int,
        callback: MessageCallback,
    ) -> Subscription:
        """Replay stored messages in order, then follow new ones.

        Each message reaches ``callback`` exactly once, even when the store
        redelivers. Messages arriving during replay are held back and
        delivered after it.
        """
        listener = _MessageListener(callback)
        feed = self._message_feeds.get(conversation_id)
        if feed is None:
            feed = self._message_feeds[conversation_id] = _Feed(conversation_id)
            feed.listeners.append(listener)
            cursor = await self._latest_id(self.messages_key(conversation_id))
            feed.task = asyncio.create_task(
                self._pump_messages(feed, cursor),
                name=f"messages-pump-{conversation_id}",
            )
        else:
            feed.listeners.append(listener)

        await self._replay(conversation_id, listener)
        logger.debug("Subscribed to messages for conversation %d", conversation_id)
        return Subscription(
            lambda: self._remove_listener(self._message_feeds, conversation_id, listener)
        )

    def unsubscribe_from_messages(
        self,
        conversation_id: int,
        callback: MessageCallback | None = None,
    ) -> None:
        self._unsubscribe(self._message_feeds, conversation_id, callback)

    async def mark_message_as_read(self, conversation_id: int, message_id: str) -> None:
        if self.user_id is None:
            return
        try:
            await self._store.append(
                self.read_key(conversation_id),
                {"messageId": message_id, "readBy": str(self.user_id)},
            )
        except Exception:
            logger.exception("Error marking message %s as read", message_id)

    # ---- typing ----

    async def set_typing_status(self, conversation_id: int, is_typing: bool) -> None:
        if self.user_id is None:
            return
        try:
            await self._store.append(
                self.typing_key(conversation_id),
                {"userId": str(self.user_id), "isTyping": "1" if is_typing else "0"},
            )
        except Exception:
            logger.exception("Error setting typing status in conversation %d", conversation_id)

    async def subscribe_to_typing_status(
        self,
        conversation_id: int,
        callback: TypingCallback,
    ) -> Subscription:
        listener = _TypingListener(callback)
        feed = self._typing_feeds.get(conversation_id)
        if feed is None:
            feed = self._typing_feeds[conversation_id] = _Feed(conversation_id)
            feed.listeners.append(listener)
            cursor = await self._latest_id(self.typing_key(conversation_id))
            feed.task = asyncio.create_task(
                self._pump_typing(feed, cursor),
                name=f"typing-pump-{conversation_id}",
            )
        else:
            feed.listeners.append(listener)

        return Subscription(
            lambda: self._remove_listener(self._typing_feeds, conversation_id, listener)
        )

    def unsubscribe_from_typing_status(
        self,
        conversation_id: int,
        callback: TypingCallback | None = None,
    ) -> None:
        self._unsubscribe(self._typing_feeds, conversation_id, callback)

    # ---- internals ----

    async def _latest_id(self, key: str) -> str:
        try:
            entries = await self._store.range(key)
        except Exception:
            logger.exception("Error reading %s, following from the start", key)
            return START_ID
        if not entries:
            return START_ID
        return max((entry_id for entry_id, _ in entries), key=entry_key)

    async def _load_messages(self, conversation_id: int) -> list[ClientMessage]:
        entries = await self._store.range(self.messages_key(conversation_id))
        read_ids = {
            fields.get("messageId")
            for _, fields in await self._store.range(self.read_key(conversation_id))
        }
        messages = [
            self._to_message(conversation_id, entry, read_ids) for entry in entries
        ]
        messages.sort(key=lambda m: entry_key(m.id))
        return messages

    def _to_message(
        self,
        conversation_id: int,
        entry: StreamEntry,
        read_ids: set[str | None] | None = None,
    ) -> ClientMessage:
        entry_id, fields = entry
        if not fields.get("content"):
            logger.warning("Message %s is missing content", entry_id)
        return ClientMessage(
            id=entry_id,
            conversation_id=conversation_id,
            sender_id=int(fields.get("senderId") or 0),
            content=fields.get("content", ""),
            read=fields.get("read") == "1" or entry_id in (read_ids or ()),
            created_at=from_millis(entry_key(entry_id)[0]),
            client_timestamp=fields.get("clientTimestamp"),
        )

    async def _replay(self, conversation_id: int, listener: _MessageListener) -> None:
        listener.replaying = True
        try:
            for message in await self._load_messages(conversation_id):
                await self._deliver(listener, message)
        except Exception:
            logger.exception("Error replaying messages for conversation %d", conversation_id)
        finally:
            # the pump keeps queueing until the backlog is empty
            while listener.backlog:
                await self._deliver(listener, listener.backlog.pop(0))
            listener.replaying = False

    async def _deliver(self, listener: _MessageListener, message: ClientMessage) -> None:
        # entry ids only grow, so the last delivered id is enough to drop repeats
        if listener.last_id is not None and entry_key(message.id) <= entry_key(listener.last_id):
            return
        listener.last_id = message.id
        await _invoke(listener.callback, message)

    async def _pump_messages(self, feed: _Feed, cursor: str) -> None:
        key = self.messages_key(feed.conversation_id)
        while True:
            try:
                entries = await self._store.read(key, cursor, block_ms=self._block_ms)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Message feed for conversation %d lost, retrying in %.1fs",
                    feed.conversation_id, self._reconnect_delay,
                )
                await asyncio.sleep(self._reconnect_delay)
                cursor = await self._resync(feed, cursor)
                continue

            for entry in entries:
                cursor = entry[0]
                message = self._to_message(feed.conversation_id, entry)
                for listener in list(feed.listeners):
                    if listener.replaying:
                        listener.backlog.append(message)
                    else:
                        await self._deliver(listener, message)

    async def _resync(self, feed: _Feed, cursor: str) -> str:
        """Re-run replay for every listener after a transport failure."""
        try:
            entries = await self._store.range(self.messages_key(feed.conversation_id))
        except Exception:
            logger.debug("Resync of conversation %d failed", feed.conversation_id, exc_info=True)
            return cursor
        if entries:
            cursor = max((entry_id for entry_id, _ in entries), key=entry_key)
        for listener in list(feed.listeners):
            await self._replay(feed.conversation_id, listener)
        return cursor

    async def _pump_typing(self, feed: _Feed, cursor: str) -> None:
        key = self.typing_key(feed.conversation_id)
        while True:
            try:
                entries = await self._store.read(key, cursor, block_ms=self._block_ms)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "Typing feed for conversation %d lost, retrying in %.1fs",
                    feed.conversation_id, self._reconnect_delay,
                )
                await asyncio.sleep(self._reconnect_delay)
                continue

            for entry_id, fields in entries:
                cursor = entry_id
                try:
                    user_id = int(fields["userId"])
                except (KeyError, ValueError):
                    continue
                if user_id == self.user_id:
                    continue
                status = TypingStatus(user_id=user_id, is_typing=fields.get("isTyping") == "1")
                for listener in list(feed.listeners):
                    await _invoke(listener.callback, status)

    def _remove_listener(self, feeds: dict[int, _Feed], conversation_id: int, listener: Any) -> None:
        feed = feeds.get(conversation_id)
        if feed is None or listener not in feed.listeners:
            return
        feed.listeners.remove(listener)
        if not feed.listeners:
            self._close_feed(feeds, conversation_id)

    def _unsubscribe(
        self,
        feeds: dict[int, _Feed],
        conversation_id: int,
        callback: Callable[..., Any] | None,
    ) -> None:
        feed = feeds.get(conversation_id)
        if feed is None:
            return
        if callback is not None:
            feed.listeners = [lsn for lsn in feed.listeners if lsn.callback is not callback]
        else:
            feed.listeners.clear()
        if not feed.listeners:
            self._close_feed(feeds, conversation_id)
        logger.debug("Unsubscribed from conversation %d", conversation_id)

    @staticmethod
    def _close_feed(feeds: dict[int, _Feed], conversation_id: int) -> None:
        feed = feeds.pop(conversation_id)
        if feed.task is not None:
            feed.task.cancel()


async def _invoke(callback: Callable[[Any], Any], payload: Any) -> None:
    try:
        result = callback(payload)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("Realtime listener failed")
