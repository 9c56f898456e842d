from __future__ import annotations

from typing import Any, Protocol


class EventPublisher(Protocol):
    async def publish(
        self,
        channel: str,
        event: str,
        data: dict[str, Any],
        *,
        route: dict[str, Any] | None = None,
    ) -> None: ...
