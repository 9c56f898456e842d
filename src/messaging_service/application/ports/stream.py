from __future__ import annotations

from typing import Protocol

StreamEntry = tuple[str, dict[str, str]]


class StreamStore(Protocol):
    """Key-path addressed append-only streams plus small hashes.

    Entry ids are ``"<ms>-<seq>"`` strings that sort in append order.
    """

    async def ping(self) -> None: ...

    async def append(self, key: str, fields: dict[str, str]) -> str: ...

    async def range(self, key: str) -> list[StreamEntry]:
        """Every entry currently stored under ``key``, oldest first."""
        ...

    async def read(
        self, key: str, after: str, *, block_ms: int,
    ) -> list[StreamEntry]:
        """Entries newer than ``after``; waits up to ``block_ms`` for one."""
        ...

    async def hset(self, key: str, mapping: dict[str, str]) -> None: ...

    async def hgetall(self, key: str) -> dict[str, str]: ...
