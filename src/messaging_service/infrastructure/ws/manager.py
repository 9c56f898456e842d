"""In-process live connection registry."""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Tracks live sockets per user and conversation group membership per socket.

    Owned by a single event loop; every mutation happens between awaits so no
    locking is needed. Rebuilt from zero on restart.
    """

    def __init__(self) -> None:
        self._sockets: dict[str, WebSocket] = {}
        self._owners: dict[str, int] = {}
        self._by_user: dict[int, set[str]] = {}
        self._groups: dict[str, set[int]] = {}
        self._members: dict[int, set[str]] = {}

    def register(self, ws: WebSocket, user_id: int) -> str:
        connection_id = uuid.uuid4().hex
        self._sockets[connection_id] = ws
        self._owners[connection_id] = user_id
        self._by_user.setdefault(user_id, set()).add(connection_id)
        self._groups[connection_id] = set()
        logger.debug(
            "WS registered: user=%d conn=%s (user_conns=%d)",
            user_id, connection_id, len(self._by_user[user_id]),
        )
        return connection_id

    def unregister(self, connection_id: str) -> int | None:
        user_id = self._owners.pop(connection_id, None)
        self._sockets.pop(connection_id, None)
        for conversation_id in self._groups.pop(connection_id, set()):
            members = self._members.get(conversation_id)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self._members[conversation_id]
        if user_id is not None:
            conns = self._by_user.get(user_id)
            if conns is not None:
                conns.discard(connection_id)
                if not conns:
                    del self._by_user[user_id]
            logger.debug("WS unregistered: user=%d conn=%s", user_id, connection_id)
        return user_id

    def join(self, connection_id: str, conversation_id: int) -> bool:
        """Add to the group. Returns False if unknown or already a member."""
        groups = self._groups.get(connection_id)
        if groups is None or conversation_id in groups:
            return False
        groups.add(conversation_id)
        self._members.setdefault(conversation_id, set()).add(connection_id)
        return True

    def leave(self, connection_id: str, conversation_id: int) -> bool:
        groups = self._groups.get(connection_id)
        if groups is None or conversation_id not in groups:
            return False
        groups.discard(conversation_id)
        members = self._members.get(conversation_id)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._members[conversation_id]
        return True

    def user_of(self, connection_id: str) -> int | None:
        return self._owners.get(connection_id)

    def connections_for_user(self, user_id: int) -> set[str]:
        return set(self._by_user.get(user_id, ()))

    def members(self, conversation_id: int) -> set[str]:
        return set(self._members.get(conversation_id, ()))

    def groups_of(self, connection_id: str) -> set[int]:
        return set(self._groups.get(connection_id, ()))

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self._sockets

    async def send(self, connection_ids: Iterable[str], raw: str) -> int:
        """Deliver ``raw`` to each connection; a dead socket never blocks the rest."""
        delivered = 0
        dead: list[str] = []
        for connection_id in connection_ids:
            ws = self._sockets.get(connection_id)
            if ws is None:
                continue
            try:
                await ws.send_text(raw)
                delivered += 1
            except Exception:
                logger.debug("WS send failed: conn=%s", connection_id, exc_info=True)
                dead.append(connection_id)
        for connection_id in dead:
            self.unregister(connection_id)
        return delivered
