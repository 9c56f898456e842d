from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from messaging_service.application.exceptions import ValidationError
from messaging_service.domain.entities.message import Message
from messaging_service.infrastructure.db.mappers import message as mapper
from messaging_service.infrastructure.db.models.message import MessageModel
from messaging_service.infrastructure.db.models.participant import ParticipantModel


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_messages(
        self,
        conversation_id: int,
        *,
        limit: int | None = None,
    ) -> list[Message]:
        if limit is None:
            stmt = (
                select(MessageModel)
                .where(MessageModel.conversation_id == conversation_id)
                .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
            )
            result = await self._session.execute(stmt)
            return [mapper.model_to_entity(m) for m in result.scalars().all()]

        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        newest_first = result.scalars().all()
        return [mapper.model_to_entity(m) for m in reversed(newest_first)]

    async def last_message(self, conversation_id: int) -> Message | None:
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def count_unread_in_conversation(
        self,
        conversation_id: int,
        reader_id: int,
    ) -> int:
        stmt = select(func.count(MessageModel.id)).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.sender_id != reader_id,
            MessageModel.read.is_(False),
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def count_unread_for_user(self, user_id: int) -> int:
        stmt = (
            select(func.count(MessageModel.id))
            .join(
                ParticipantModel,
                ParticipantModel.conversation_id == MessageModel.conversation_id,
            )
            .where(
                ParticipantModel.user_id == user_id,
                MessageModel.sender_id != user_id,
                MessageModel.read.is_(False),
            )
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def get_by_client_msg_id(
        self,
        conversation_id: int,
        sender_id: int,
        client_msg_id: UUID,
    ) -> Message | None:
        stmt = select(MessageModel).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.sender_id == sender_id,
            MessageModel.client_msg_id == client_msg_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(
        self,
        conversation_id: int,
        sender_id: int,
        content: str,
        ts: datetime,
        *,
        client_msg_id: UUID | None = None,
    ) -> tuple[Message, bool]:
        """Insert message idempotently. Returns (message, created_flag)."""
        if not content:
            raise ValidationError("Message content is required")

        stmt = (
            pg_insert(MessageModel)
            .values(
                conversation_id=conversation_id,
                sender_id=sender_id,
                content=content,
                read=False,
                client_msg_id=client_msg_id,
                created_at=ts,
            )
            .on_conflict_do_nothing(constraint="uq_message_idempotency")
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()

        if row is not None:
            return mapper.model_to_entity(row), True

        # Conflict on client_msg_id: fetch the original
        assert client_msg_id is not None
        existing = await MessageReaderRepo(self._session).get_by_client_msg_id(
            conversation_id, sender_id, client_msg_id,
        )
        assert existing is not None
        return existing, False

    async def mark_conversation_read(
        self,
        conversation_id: int,
        reader_id: int,
    ) -> int:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                MessageModel.sender_id != reader_id,
                MessageModel.read.is_(False),
            )
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount or 0
