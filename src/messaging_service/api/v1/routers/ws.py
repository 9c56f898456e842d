from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from messaging_service.api.deps import HubDep
from messaging_service.application.exceptions import ConnectionRejected
from messaging_service.config import settings
from messaging_service.infrastructure.ws.hub import RealtimeHub
from messaging_service.infrastructure.ws.protocol import (
    TYPING_EVENTS,
    ProtocolError,
    parse_inbound,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

REJECT_CODE = 4400


def parse_user_id(raw: str | None) -> int:
    """Handshake identity from the ``userId`` query parameter."""
    try:
        user_id = int(raw or "")
    except ValueError:
        raise ConnectionRejected("userId must be a positive integer") from None
    if user_id <= 0:
        raise ConnectionRejected("userId must be a positive integer")
    return user_id


@router.websocket("/api/socket")
async def ws_socket(websocket: WebSocket, hub: HubDep) -> None:
    try:
        user_id = parse_user_id(websocket.query_params.get("userId"))
    except ConnectionRejected as exc:
        logger.info("WS handshake rejected: %s", exc.detail)
        await websocket.close(code=REJECT_CODE, reason=exc.detail)
        return

    connection_id = await hub.connect(websocket, user_id)

    heartbeat_task = asyncio.create_task(
        _heartbeat(hub, connection_id), name=f"ws-heartbeat-{connection_id}",
    )
    try:
        await _read_loop(websocket, hub, connection_id)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for user %d (conn=%s)", user_id, connection_id)
    finally:
        heartbeat_task.cancel()
        hub.disconnect(connection_id)


async def _heartbeat(hub: RealtimeHub, connection_id: str) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    while hub.registry.is_connected(connection_id):
        await asyncio.sleep(interval)
        await hub.send_to_connection(connection_id, "pong", {})


async def _read_loop(ws: WebSocket, hub: RealtimeHub, connection_id: str) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            frame = parse_inbound(raw)
        except ProtocolError as exc:
            if exc.event in TYPING_EVENTS:
                logger.debug("Dropping malformed %s frame", exc.event)
                continue
            await hub.send_error(connection_id, exc.reason)
            continue

        await hub.handle(connection_id, frame)
