"""Realtime fan-out hub: relays, persists and notifies for live connections."""
from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable
from uuid import UUID

from fastapi import WebSocket

from messaging_service.application.deadline import persistence_deadline
from messaging_service.application.dto.conversation import SendResult
from messaging_service.application.exceptions import AppError
from messaging_service.application.ports.bus import EventPublisher
from messaging_service.application.uow import UnitOfWork
from messaging_service.domain.entities.message import Message
from messaging_service.infrastructure.bus.serializer import serialize_event
from messaging_service.infrastructure.ws import protocol
from messaging_service.infrastructure.ws.manager import ConnectionRegistry
from messaging_service.services import message_service, read_state_service

logger = logging.getLogger(__name__)

UowFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
SendCall = Callable[[], Awaitable[SendResult]]

SEND_FAILED = "Failed to process message"
READ_FAILED = "Failed to mark message as read"


class RealtimeHub:
    """Per-process hub.

    Sends to one conversation are sequenced so broadcast order always equals
    persisted order. With a publisher attached, deliveries go through the
    inter-process bus and come back via :meth:`deliver` in every process.
    """

    def __init__(
        self,
        uow_factory: UowFactory,
        *,
        registry: ConnectionRegistry | None = None,
        persistence_timeout: float | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self.registry = registry or ConnectionRegistry()
        self._timeout = persistence_timeout
        self._publisher: EventPublisher | None = None
        self._channel: str | None = None
        self._locks: dict[int, asyncio.Lock] = {}
        self._lock_users: dict[int, int] = {}

    def attach_publisher(self, publisher: EventPublisher, channel: str) -> None:
        self._publisher = publisher
        self._channel = channel
        logger.info("Hub fan-out routed through bus channel=%s", channel)

    def detach_publisher(self) -> None:
        self._publisher = None
        self._channel = None

    # ---- connection lifecycle ----

    async def connect(self, ws: WebSocket, user_id: int) -> str:
        await ws.accept()
        connection_id = self.registry.register(ws, user_id)
        logger.info("User %d connected (conn=%s)", user_id, connection_id)
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        user_id = self.registry.unregister(connection_id)
        if user_id is not None:
            logger.info("User %d disconnected (conn=%s)", user_id, connection_id)

    def join(self, connection_id: str, conversation_id: int) -> None:
        if self.registry.join(connection_id, conversation_id):
            logger.debug("Conn %s joined conversation %d", connection_id, conversation_id)

    def leave(self, connection_id: str, conversation_id: int) -> None:
        if self.registry.leave(connection_id, conversation_id):
            logger.debug("Conn %s left conversation %d", connection_id, conversation_id)

    # ---- inbound events ----

    async def handle(self, connection_id: str, frame: protocol.InboundFrame) -> None:
        if isinstance(frame, protocol.Ping):
            await self.send_to_connection(connection_id, "pong", {})

        elif isinstance(frame, protocol.JoinConversation):
            self.join(connection_id, frame.data.conversation_id)

        elif isinstance(frame, protocol.LeaveConversation):
            self.leave(connection_id, frame.data.conversation_id)

        elif isinstance(frame, protocol.SendNewMessage):
            await self.send_message(
                connection_id,
                frame.data.conversation_id,
                frame.data.sender_id,
                frame.data.content,
                client_msg_id=frame.data.client_msg_id,
            )

        elif isinstance(frame, (protocol.UserTyping, protocol.UserStoppedTyping)):
            await self.typing_status(
                connection_id,
                frame.data.conversation_id,
                frame.data.user_id,
                is_typing=isinstance(frame, protocol.UserTyping),
            )

        elif isinstance(frame, protocol.MessageRead):
            await self.message_read(
                connection_id,
                frame.data.conversation_id,
                frame.data.message_id,
            )

    async def send_message(
        self,
        connection_id: str,
        conversation_id: int | None,
        sender_id: int | None,
        content: str | None,
        *,
        client_msg_id: UUID | None = None,
    ) -> Message | None:
        """Realtime ingress. Errors go back to the originating connection only."""
        try:
            message_service.validate_send(conversation_id, sender_id, content)
            assert conversation_id is not None and sender_id is not None and content is not None

            async def _send() -> SendResult:
                async with self._uow_factory() as uow:
                    return await message_service.send_message(
                        conversation_id, sender_id, content, uow,
                        client_msg_id=client_msg_id,
                    )

            result = await self.accept(conversation_id, _send)
        except AppError as exc:
            await self.send_error(connection_id, exc.detail or SEND_FAILED)
            return None
        except Exception:
            logger.exception("Error processing new message from conn %s", connection_id)
            await self.send_error(connection_id, SEND_FAILED)
            return None

        logger.info(
            "New message %d from user %d in conversation %d",
            result.message.id, sender_id, conversation_id,
        )
        return result.message

    async def accept(self, conversation_id: int, send: SendCall) -> SendResult:
        """Run a persist step for one conversation, then fan the result out.

        Shared by the realtime and the request/response ingress so both
        always persist, notify and broadcast. Nothing is pushed unless the
        persist step returns, so a failed commit leaves no partial fan-out.
        """
        async with self._sequenced(conversation_id):
            async with persistence_deadline(self._timeout):
                result = await send()
            if result.created:
                await self._fan_out(result)
        return result

    async def typing_status(
        self,
        connection_id: str,
        conversation_id: int,
        user_id: int | None,
        *,
        is_typing: bool,
    ) -> None:
        user_id = user_id or self.registry.user_of(connection_id)
        if user_id is None:
            return
        event = "user_typing" if is_typing else "user_stopped_typing"
        await self.broadcast(
            conversation_id,
            event,
            protocol.dump(protocol.TypingOut(user_id=user_id, conversation_id=conversation_id)),
            exclude=connection_id,
        )

    async def message_read(
        self,
        connection_id: str,
        conversation_id: int,
        message_id: int | None,
    ) -> None:
        reader_id = self.registry.user_of(connection_id)
        if reader_id is None:
            return
        try:
            async with persistence_deadline(self._timeout):
                async with self._uow_factory() as uow:
                    await read_state_service.mark_conversation_read(
                        conversation_id, reader_id, uow,
                    )
        except AppError as exc:
            await self.send_error(connection_id, exc.detail or READ_FAILED)
            return
        except Exception:
            logger.exception("Error marking conversation %d as read", conversation_id)
            await self.send_error(connection_id, READ_FAILED)
            return

        await self.broadcast(
            conversation_id,
            "message_read",
            protocol.dump(
                protocol.ReadReceiptOut(
                    message_id=message_id,
                    conversation_id=conversation_id,
                    read_by=reader_id,
                )
            ),
            exclude=connection_id,
        )
        logger.debug("User %d marked message %s as read", reader_id, message_id)

    # ---- outbound ----

    async def broadcast(
        self,
        conversation_id: int,
        event: str,
        data: dict[str, Any],
        *,
        exclude: str | None = None,
    ) -> None:
        await self._route(
            {"conversation": conversation_id, "exclude": exclude}, event, data,
        )

    async def push_to_user(self, user_id: int, event: str, data: dict[str, Any]) -> None:
        await self._route({"user": user_id}, event, data)

    async def send_to_connection(
        self, connection_id: str, event: str, data: dict[str, Any],
    ) -> None:
        await self.registry.send([connection_id], serialize_event(event, data))

    async def send_error(self, connection_id: str, message: str) -> None:
        await self.send_to_connection(
            connection_id, "error", protocol.dump(protocol.ErrorOut(message=message)),
        )

    async def deliver(self, route: dict[str, Any], event: str, data: dict[str, Any]) -> int:
        """Deliver to connections held by this process."""
        if route.get("conversation") is not None:
            targets = self.registry.members(int(route["conversation"]))
        elif route.get("user") is not None:
            targets = self.registry.connections_for_user(int(route["user"]))
        else:
            logger.warning("Dropping %s event without a route", event)
            return 0
        exclude = route.get("exclude")
        if exclude:
            targets.discard(exclude)
        if not targets:
            return 0
        return await self.registry.send(targets, serialize_event(event, data))

    async def _route(self, route: dict[str, Any], event: str, data: dict[str, Any]) -> None:
        if self._publisher is None or self._channel is None:
            await self.deliver(route, event, data)
            return
        try:
            await self._publisher.publish(self._channel, event, data, route=route)
        except Exception:
            logger.exception("Bus publish failed, delivering %s locally", event)
            await self.deliver(route, event, data)

    async def _fan_out(self, result: SendResult) -> None:
        message = result.message
        for push in result.pushes:
            await self.push_to_user(
                push.user_id,
                "notification",
                protocol.dump(
                    protocol.NotificationOut(type=push.type, conversation=push.conversation_id)
                ),
            )
        await self.broadcast(
            message.conversation_id,
            "new_message",
            protocol.dump(protocol.MessageOut.from_entity(message)),
        )

    @asynccontextmanager
    async def _sequenced(self, conversation_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = self._locks[conversation_id] = asyncio.Lock()
        self._lock_users[conversation_id] = self._lock_users.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[conversation_id] -= 1
            if not self._lock_users[conversation_id]:
                del self._lock_users[conversation_id]
                del self._locks[conversation_id]
