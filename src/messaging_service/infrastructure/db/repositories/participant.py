from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from messaging_service.domain.entities.participant import Participant
from messaging_service.infrastructure.db.mappers import participant as mapper
from messaging_service.infrastructure.db.models.participant import ParticipantModel


class ParticipantReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def is_participant(self, conversation_id: int, user_id: int) -> bool:
        stmt = (
            select(ParticipantModel.id)
            .where(
                ParticipantModel.conversation_id == conversation_id,
                ParticipantModel.user_id == user_id,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def list_participants(self, conversation_id: int) -> list[Participant]:
        stmt = (
            select(ParticipantModel)
            .where(ParticipantModel.conversation_id == conversation_id)
            .order_by(ParticipantModel.id)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ParticipantWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(
        self,
        conversation_id: int,
        user_id: int,
        ts: datetime,
    ) -> Participant:
        stmt = (
            pg_insert(ParticipantModel)
            .values(conversation_id=conversation_id, user_id=user_id, joined_at=ts)
            .on_conflict_do_nothing(constraint="uq_participant_member")
            .returning(ParticipantModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is not None:
            return mapper.model_to_entity(row)

        existing = await self._session.execute(
            select(ParticipantModel).where(
                ParticipantModel.conversation_id == conversation_id,
                ParticipantModel.user_id == user_id,
            )
        )
        return mapper.model_to_entity(existing.scalar_one())
