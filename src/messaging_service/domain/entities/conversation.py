from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Conversation:
    id: int
    property_id: int | None
    last_message_at: datetime
    created_at: datetime
