from __future__ import annotations

from enum import StrEnum


class NotificationType(StrEnum):
    MESSAGE = "message"
    BOOKING = "booking"
    PROPERTY_UPDATE = "property_update"


class RelatedType(StrEnum):
    CONVERSATION = "conversation"
    MESSAGE = "message"
    BOOKING = "booking"
    PROPERTY = "property"


class ClientState(StrEnum):
    """Connection state exposed by the client adapter."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
