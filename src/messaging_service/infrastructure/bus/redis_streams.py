"""Redis Streams backed implementation of the client stream store."""
from __future__ import annotations

import logging

import redis.asyncio as aioredis

from messaging_service.application.ports.stream import StreamEntry

logger = logging.getLogger(__name__)


class RedisStreamStore:
    """Implements application.ports.stream.StreamStore.

    The client must be created with ``decode_responses=True``.
    """

    def __init__(self, redis: aioredis.Redis, *, maxlen: int | None = 1000) -> None:
        self._redis = redis
        self._maxlen = maxlen

    async def ping(self) -> None:
        await self._redis.ping()

    async def append(self, key: str, fields: dict[str, str]) -> str:
        entry_id = await self._redis.xadd(
            key, fields, maxlen=self._maxlen, approximate=True,
        )
        return str(entry_id)

    async def range(self, key: str) -> list[StreamEntry]:
        entries = await self._redis.xrange(key, min="-", max="+")
        return [(str(entry_id), dict(fields)) for entry_id, fields in entries]

    async def read(self, key: str, after: str, *, block_ms: int) -> list[StreamEntry]:
        response = await self._redis.xread({key: after}, block=block_ms)
        if not response:
            return []
        out: list[StreamEntry] = []
        for _stream, entries in response:
            out.extend((str(entry_id), dict(fields)) for entry_id, fields in entries)
        return out

    async def hset(self, key: str, mapping: dict[str, str]) -> None:
        await self._redis.hset(key, mapping=mapping)

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(await self._redis.hgetall(key))

    async def aclose(self) -> None:
        await self._redis.aclose()
        logger.debug("Stream store connection closed")
