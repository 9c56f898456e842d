"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import itertools
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Iterable
from uuid import UUID

import pytest

from messaging_service.application.dto.notification import NotificationDraft
from messaging_service.application.exceptions import ValidationError
from messaging_service.domain.entities.conversation import Conversation
from messaging_service.domain.entities.message import Message
from messaging_service.domain.entities.notification import Notification
from messaging_service.domain.entities.participant import Participant
from messaging_service.domain.entities.user import User

T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class StepClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start: datetime = T0) -> None:
        self._next = start

    def now(self) -> datetime:
        current = self._next
        self._next += timedelta(seconds=1)
        return current


@dataclass
class FakeDB:
    conversations: dict[int, Conversation] = field(default_factory=dict)
    participants: list[Participant] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
    notifications: list[Notification] = field(default_factory=list)
    users: dict[int, User] = field(default_factory=dict)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def next_id(self) -> int:
        return next(self._ids)


@dataclass
class FakeConversationReader:
    db: FakeDB

    async def get_by_id(self, conversation_id: int) -> Conversation | None:
        return self.db.conversations.get(conversation_id)

    async def find_between(
        self, user_a: int, user_b: int, *, property_id: int | None = None,
    ) -> Conversation | None:
        for conv in self.db.conversations.values():
            members = {p.user_id for p in self.db.participants if p.conversation_id == conv.id}
            if {user_a, user_b} <= members and (
                property_id is None or conv.property_id == property_id
            ):
                return conv
        return None

    async def list_for_user(self, user_id: int) -> list[Conversation]:
        ids = {p.conversation_id for p in self.db.participants if p.user_id == user_id}
        convs = [c for c in self.db.conversations.values() if c.id in ids]
        return sorted(convs, key=lambda c: c.last_message_at, reverse=True)


@dataclass
class FakeConversationWriter:
    db: FakeDB

    async def create(self, property_id: int | None, ts: datetime) -> Conversation:
        conv = Conversation(
            id=self.db.next_id(), property_id=property_id, last_message_at=ts, created_at=ts,
        )
        self.db.conversations[conv.id] = conv
        return conv

    async def touch_last_message_at(self, conversation_id: int, ts: datetime) -> None:
        conv = self.db.conversations.get(conversation_id)
        if conv is not None and ts > conv.last_message_at:
            self.db.conversations[conversation_id] = replace(conv, last_message_at=ts)


@dataclass
class FakeParticipantReader:
    db: FakeDB

    async def is_participant(self, conversation_id: int, user_id: int) -> bool:
        return any(
            p.conversation_id == conversation_id and p.user_id == user_id
            for p in self.db.participants
        )

    async def list_participants(self, conversation_id: int) -> list[Participant]:
        return [p for p in self.db.participants if p.conversation_id == conversation_id]


@dataclass
class FakeParticipantWriter:
    db: FakeDB

    async def add(self, conversation_id: int, user_id: int, ts: datetime) -> Participant:
        for p in self.db.participants:
            if p.conversation_id == conversation_id and p.user_id == user_id:
                return p
        participant = Participant(
            id=self.db.next_id(), conversation_id=conversation_id, user_id=user_id, joined_at=ts,
        )
        self.db.participants.append(participant)
        return participant


@dataclass
class FakeMessageReader:
    db: FakeDB

    def _in(self, conversation_id: int) -> list[Message]:
        found = [m for m in self.db.messages if m.conversation_id == conversation_id]
        return sorted(found, key=lambda m: (m.created_at, m.id))

    async def list_messages(
        self, conversation_id: int, *, limit: int | None = None,
    ) -> list[Message]:
        found = self._in(conversation_id)
        return found[-limit:] if limit else found

    async def last_message(self, conversation_id: int) -> Message | None:
        found = self._in(conversation_id)
        return found[-1] if found else None

    async def count_unread_in_conversation(self, conversation_id: int, reader_id: int) -> int:
        return sum(
            1 for m in self._in(conversation_id) if m.sender_id != reader_id and not m.read
        )

    async def count_unread_for_user(self, user_id: int) -> int:
        ids = {p.conversation_id for p in self.db.participants if p.user_id == user_id}
        return sum(
            1 for m in self.db.messages
            if m.conversation_id in ids and m.sender_id != user_id and not m.read
        )

    async def get_by_client_msg_id(
        self, conversation_id: int, sender_id: int, client_msg_id: UUID,
    ) -> Message | None:
        for m in self.db.messages:
            if (
                m.conversation_id == conversation_id
                and m.sender_id == sender_id
                and m.client_msg_id == client_msg_id
            ):
                return m
        return None


@dataclass
class FakeMessageWriter:
    db: FakeDB

    async def append(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        ts: datetime,
        *,
        client_msg_id: UUID | None = None,
    ) -> tuple[Message, bool]:
        if not content or not content.strip():
            raise ValidationError("Message content must not be empty")
        if client_msg_id is not None:
            existing = await FakeMessageReader(self.db).get_by_client_msg_id(
                conversation_id, sender_id, client_msg_id,
            )
            if existing is not None:
                return existing, False
        msg = Message(
            id=self.db.next_id(),
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=content,
            read=False,
            created_at=ts,
            client_msg_id=client_msg_id,
        )
        self.db.messages.append(msg)
        return msg, True

    async def mark_conversation_read(self, conversation_id: int, reader_id: int) -> int:
        changed = 0
        for i, m in enumerate(self.db.messages):
            if m.conversation_id == conversation_id and m.sender_id != reader_id and not m.read:
                self.db.messages[i] = replace(m, read=True)
                changed += 1
        return changed


@dataclass
class FakeNotificationReader:
    db: FakeDB

    async def get_by_id(self, notification_id: int) -> Notification | None:
        return next((n for n in self.db.notifications if n.id == notification_id), None)

    async def list_for_user(self, user_id: int) -> list[Notification]:
        mine = [n for n in self.db.notifications if n.user_id == user_id]
        return sorted(mine, key=lambda n: (n.created_at, n.id), reverse=True)

    async def count_unread(self, user_id: int) -> int:
        return sum(1 for n in self.db.notifications if n.user_id == user_id and not n.read)


@dataclass
class FakeNotificationWriter:
    db: FakeDB

    async def create(self, draft: NotificationDraft, ts: datetime) -> Notification:
        notification = Notification(
            id=self.db.next_id(),
            user_id=draft.user_id,
            type=draft.type,
            title=draft.title,
            content=draft.content,
            related_id=draft.related_id,
            related_type=draft.related_type,
            read=False,
            created_at=ts,
        )
        self.db.notifications.append(notification)
        return notification

    async def mark_read(self, notification_id: int) -> None:
        for i, n in enumerate(self.db.notifications):
            if n.id == notification_id:
                self.db.notifications[i] = replace(n, read=True)

    async def mark_all_read(self, user_id: int) -> int:
        changed = 0
        for i, n in enumerate(self.db.notifications):
            if n.user_id == user_id and not n.read:
                self.db.notifications[i] = replace(n, read=True)
                changed += 1
        return changed


@dataclass
class FakeUserReader:
    db: FakeDB

    async def get_many(self, user_ids: Iterable[int]) -> dict[int, User]:
        return {uid: self.db.users[uid] for uid in user_ids if uid in self.db.users}


class FakeUoW:
    def __init__(self, db: FakeDB | None = None) -> None:
        self.db = db or FakeDB()
        self.conversations = FakeConversationReader(self.db)
        self.conversations_w = FakeConversationWriter(self.db)
        self.participants = FakeParticipantReader(self.db)
        self.participants_w = FakeParticipantWriter(self.db)
        self.messages = FakeMessageReader(self.db)
        self.messages_w = FakeMessageWriter(self.db)
        self.notifications = FakeNotificationReader(self.db)
        self.notifications_w = FakeNotificationWriter(self.db)
        self.users = FakeUserReader(self.db)
        self._committed = False
        self.commits = 0
        self.fail_commit: Exception | None = None

    async def commit(self) -> None:
        if self.fail_commit is not None:
            raise self.fail_commit
        self._committed = True
        self.commits += 1

    async def rollback(self) -> None:
        pass

    async def flush(self) -> None:
        pass

    def factory(self):
        """Unit-of-work factory handing out this instance, for the hub."""

        @asynccontextmanager
        async def _open() -> AsyncIterator[FakeUoW]:
            yield self

        return _open


def make_user(user_id: int, first: str | None = None, last: str | None = None,
              email: str | None = None, picture: str | None = None) -> User:
    return User(
        id=user_id,
        email=email or f"user{user_id}@example.com",
        first_name=first,
        last_name=last,
        profile_picture=picture,
    )


def seed_conversation(
    uow: FakeUoW,
    members: Iterable[int] = (1, 2),
    *,
    property_id: int | None = 10,
    ts: datetime = T0,
) -> Conversation:
    conv = Conversation(
        id=uow.db.next_id(), property_id=property_id, last_message_at=ts, created_at=ts,
    )
    uow.db.conversations[conv.id] = conv
    for user_id in members:
        uow.db.participants.append(
            Participant(id=uow.db.next_id(), conversation_id=conv.id, user_id=user_id, joined_at=ts)
        )
    return conv


def seed_message(
    uow: FakeUoW,
    conversation_id: int,
    sender_id: int,
    content: str = "hello",
    *,
    read: bool = False,
    ts: datetime = T0,
) -> Message:
    msg = Message(
        id=uow.db.next_id(),
        conversation_id=conversation_id,
        sender_id=sender_id,
        content=content,
        read=read,
        created_at=ts,
    )
    uow.db.messages.append(msg)
    return msg


class FakeWebSocket:
    """Captures frames a hub sends to one socket."""

    def __init__(self, *, broken: bool = False) -> None:
        self.accepted = False
        self.broken = broken
        self.sent: list[str] = []

    async def accept(self) -> None:
        self.accepted = True

    async def send_text(self, data: str) -> None:
        if self.broken:
            raise RuntimeError("socket closed")
        self.sent.append(data)


class FakeStreamStore:
    """In-memory stand-in for the Redis Streams store."""

    def __init__(self) -> None:
        self.streams: dict[str, list[tuple[str, dict[str, str]]]] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.read_failures = 0
        self.duplicate_reads = False
        self.down = False
        self._ms = 1_740_830_400_000
        self._changed = asyncio.Condition()

    @staticmethod
    def _key(entry_id: str) -> tuple[int, int]:
        ms, _, seq = entry_id.partition("-")
        return int(ms), int(seq)

    def _newer(self, key: str, after: str) -> list[tuple[str, dict[str, str]]]:
        floor = self._key(after)
        return [e for e in self.streams.get(key, []) if self._key(e[0]) > floor]

    async def ping(self) -> None:
        if self.down:
            raise ConnectionError("store unreachable")

    async def append(self, key: str, fields: dict[str, str]) -> str:
        if self.down:
            raise ConnectionError("store unreachable")
        self._ms += 1
        entry_id = f"{self._ms}-0"
        self.streams.setdefault(key, []).append((entry_id, dict(fields)))
        async with self._changed:
            self._changed.notify_all()
        return entry_id

    async def range(self, key: str) -> list[tuple[str, dict[str, str]]]:
        if self.down:
            raise ConnectionError("store unreachable")
        return list(self.streams.get(key, []))

    async def read(self, key: str, after: str, *, block_ms: int) -> list[tuple[str, dict[str, str]]]:
        if self.read_failures:
            self.read_failures -= 1
            raise ConnectionError("stream read failed")
        async with self._changed:
            try:
                await asyncio.wait_for(
                    self._changed.wait_for(lambda: bool(self._newer(key, after))),
                    block_ms / 1000,
                )
            except asyncio.TimeoutError:
                return []
        entries = self._newer(key, after)
        return entries + entries if self.duplicate_reads else entries

    async def hset(self, key: str, mapping: dict[str, str]) -> None:
        self.hashes.setdefault(key, {}).update(mapping)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.hashes.get(key, {}))


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


@pytest.fixture
def clock() -> StepClock:
    return StepClock(T0 + timedelta(minutes=1))
