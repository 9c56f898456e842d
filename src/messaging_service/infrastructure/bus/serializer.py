from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, BaseModel):
            return o.model_dump(mode="json", by_alias=True)
        return super().default(o)


def serialize_event(
    event: str,
    data: dict[str, Any] | BaseModel,
    route: dict[str, Any] | None = None,
) -> str:
    """Encode ``{"event", "data"}``; ``route`` is only set on the inter-process bus."""
    envelope: dict[str, Any] = {"event": event, "data": data}
    if route is not None:
        envelope["route"] = route
    return json.dumps(envelope, cls=_Encoder)


def deserialize_event(raw: str | bytes) -> tuple[str, dict[str, Any], dict[str, Any] | None]:
    envelope = json.loads(raw)
    return envelope["event"], envelope["data"], envelope.get("route")
