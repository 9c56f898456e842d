"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends
from starlette.requests import HTTPConnection

from messaging_service.application.uow import UnitOfWork
from messaging_service.infrastructure.db.session import AsyncSessionLocal
from messaging_service.infrastructure.db.uow import SqlAlchemyUoW
from messaging_service.infrastructure.ws.hub import RealtimeHub


async def get_uow() -> AsyncIterator[UnitOfWork]:
    async with AsyncSessionLocal() as session:
        async with SqlAlchemyUoW(session) as uow:
            yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]


def get_hub(conn: HTTPConnection) -> RealtimeHub:
    return conn.app.state.hub


HubDep = Annotated[RealtimeHub, Depends(get_hub)]
