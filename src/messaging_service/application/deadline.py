from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from messaging_service.application.exceptions import TransientError


@asynccontextmanager
async def persistence_deadline(seconds: float | None) -> AsyncIterator[None]:
    """Bound a block of persistence calls; expiry surfaces as TransientError."""
    try:
        async with asyncio.timeout(seconds):
            yield
    except TimeoutError as exc:
        raise TransientError("Persistence call timed out") from exc
