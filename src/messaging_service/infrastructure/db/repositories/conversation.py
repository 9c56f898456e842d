from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from messaging_service.domain.entities.conversation import Conversation
from messaging_service.infrastructure.db.mappers import conversation as mapper
from messaging_service.infrastructure.db.models.conversation import ConversationModel
from messaging_service.infrastructure.db.models.participant import ParticipantModel


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: int) -> Conversation | None:
        result = await self._session.get(ConversationModel, conversation_id)
        return mapper.model_to_entity(result) if result else None

    async def find_between(
        self,
        user_a: int,
        user_b: int,
        *,
        property_id: int | None = None,
    ) -> Conversation | None:
        member_a = aliased(ParticipantModel)
        member_b = aliased(ParticipantModel)
        stmt = (
            select(ConversationModel)
            .join(member_a, member_a.conversation_id == ConversationModel.id)
            .join(member_b, member_b.conversation_id == ConversationModel.id)
            .where(
                member_a.user_id == user_a,
                member_b.user_id == user_b,
            )
        )
        if property_id is not None:
            stmt = stmt.where(ConversationModel.property_id == property_id)
        stmt = stmt.order_by(
            ConversationModel.last_message_at.desc(),
            ConversationModel.id.desc(),
        ).limit(1)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_user(self, user_id: int) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .join(
                ParticipantModel,
                ParticipantModel.conversation_id == ConversationModel.id,
            )
            .where(ParticipantModel.user_id == user_id)
            .order_by(
                ConversationModel.last_message_at.desc(),
                ConversationModel.id.desc(),
            )
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, property_id: int | None, ts: datetime) -> Conversation:
        model = ConversationModel(
            property_id=property_id,
            last_message_at=ts,
            created_at=ts,
        )
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def touch_last_message_at(
        self,
        conversation_id: int,
        ts: datetime,
    ) -> None:
        stmt = (
            update(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .values(last_message_at=func.greatest(ConversationModel.last_message_at, ts))
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)
