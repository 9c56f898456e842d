"""Seed development data: creates the schema, two users and a property conversation."""
from __future__ import annotations

import asyncio
import logging

from sqlalchemy.dialects.postgresql import insert as pg_insert

from messaging_service.infrastructure.db.base import Base
from messaging_service.infrastructure.db.models import UserModel
from messaging_service.infrastructure.db.session import AsyncSessionLocal, engine
from messaging_service.infrastructure.db.uow import SqlAlchemyUoW
from messaging_service.services import conversation_service, message_service

logger = logging.getLogger(__name__)

TENANT_ID = 42
LANDLORD_ID = 7
PROPERTY_ID = 1001

USERS = [
    {"id": TENANT_ID, "email": "tenant@example.com", "first_name": "Alex", "last_name": "Kim"},
    {"id": LANDLORD_ID, "email": "landlord@example.com", "first_name": "Sam", "last_name": "Lee"},
]


async def create_schema() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Schema ready")


async def seed() -> None:
    await create_schema()
    async with AsyncSessionLocal() as session:
        await session.execute(pg_insert(UserModel).values(USERS).on_conflict_do_nothing())
        await session.commit()

        uow = SqlAlchemyUoW(session)
        conv, result = await conversation_service.start_conversation(
            TENANT_ID, LANDLORD_ID, PROPERTY_ID, "Hi! Is the flat still available?", uow,
        )
        replies = [
            (LANDLORD_ID, "Yes, it is. Would you like to come for a viewing?"),
            (TENANT_ID, "Saturday morning works for me."),
        ]
        for sender_id, content in replies:
            await message_service.send_message(conv.id, sender_id, content, uow)

        logger.info(
            "Seeded conversation %d with %d messages (first=%d)",
            conv.id, len(replies) + 1, result.message.id,
        )
    await engine.dispose()


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
