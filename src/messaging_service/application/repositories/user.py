from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from messaging_service.domain.entities.user import User


class UserReader(Protocol):
    async def get_many(self, user_ids: Iterable[int]) -> dict[int, User]: ...
