from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Notification:
    id: int
    user_id: int
    type: str
    title: str
    content: str
    related_id: int | None
    related_type: str | None
    read: bool
    created_at: datetime
