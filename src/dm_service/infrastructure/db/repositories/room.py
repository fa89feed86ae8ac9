from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import cast, func, select, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from dm_service.application.dto.room import RoomSummary, UnseenDigest
from dm_service.domain.entities.message import Message
from dm_service.domain.entities.room import Room, pair_key
from dm_service.domain.value_objects.enums import ParticipantRole
from dm_service.infrastructure.db.mappers import message as message_mapper
from dm_service.infrastructure.db.mappers import room as mapper
from dm_service.infrastructure.db.models.message import MessageModel
from dm_service.infrastructure.db.models.participant import ParticipantModel
from dm_service.infrastructure.db.models.room import RoomModel
from dm_service.infrastructure.db.repositories._filters import unseen_by


class RoomReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, room_id: UUID) -> Room | None:
        result = await self._session.get(RoomModel, room_id)
        return mapper.model_to_entity(result) if result else None

    async def get_by_pair(self, user_a: str, user_b: str) -> Room | None:
        low, high = pair_key(user_a, user_b)
        stmt = select(RoomModel).where(
            RoomModel.user_low_id == low,
            RoomModel.user_high_id == high,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_summaries_for_user(self, user_id: str) -> list[RoomSummary]:
        stmt = (
            select(RoomModel)
            .join(ParticipantModel, ParticipantModel.room_id == RoomModel.id)
            .where(ParticipantModel.user_id == user_id)
            .order_by(
                RoomModel.last_message_at.desc().nulls_last(),
                RoomModel.created_at.desc(),
            )
        )
        result = await self._session.execute(stmt)
        rooms = [mapper.model_to_entity(m) for m in result.scalars().all()]
        if not rooms:
            return []

        room_ids = [r.room_id for r in rooms]
        last = await self._last_messages(room_ids)

        count_stmt = (
            select(MessageModel.room_id, func.count())
            .where(MessageModel.room_id.in_(room_ids), *unseen_by(user_id))
            .group_by(MessageModel.room_id)
        )
        counts = dict((await self._session.execute(count_stmt)).all())

        return [
            RoomSummary(
                room_id=r.room_id,
                participants=r.participants,
                last_message=last.get(r.room_id),
                unseen_count=int(counts.get(r.room_id, 0)),
            )
            for r in rooms
        ]

    async def list_unseen_digests(self) -> list[UnseenDigest]:
        count_stmt = (
            select(
                ParticipantModel.room_id,
                ParticipantModel.user_id,
                ParticipantModel.role,
                func.count(MessageModel.id),
            )
            .join(MessageModel, MessageModel.room_id == ParticipantModel.room_id)
            .where(*unseen_by(ParticipantModel.user_id))
            .group_by(ParticipantModel.room_id, ParticipantModel.user_id, ParticipantModel.role)
        )
        rows = (await self._session.execute(count_stmt)).all()
        if not rows:
            return []

        # latest unseen message per (room, participant)
        latest_stmt = (
            select(ParticipantModel.user_id, MessageModel)
            .join(MessageModel, MessageModel.room_id == ParticipantModel.room_id)
            .where(*unseen_by(ParticipantModel.user_id))
            .order_by(ParticipantModel.room_id, ParticipantModel.user_id, MessageModel.seq.desc())
            .distinct(ParticipantModel.room_id, ParticipantModel.user_id)
        )
        latest: dict[tuple[UUID, str], Message] = {}
        for user_id, model in (await self._session.execute(latest_stmt)).all():
            latest[(model.room_id, user_id)] = message_mapper.model_to_entity(model)

        room_ids = {row[0] for row in rows}
        notified_stmt = select(RoomModel).where(RoomModel.id.in_(room_ids))
        notified = {
            m.id: mapper.model_to_entity(m).last_notification_sent
            for m in (await self._session.execute(notified_stmt)).scalars().all()
        }

        return [
            UnseenDigest(
                room_id=room_id,
                user_id=user_id,
                role=ParticipantRole(role),
                unseen_count=int(count),
                latest=latest.get((room_id, user_id)),
                last_notified_at=notified.get(room_id, {}).get(user_id),
            )
            for room_id, user_id, role, count in rows
        ]

    async def _last_messages(self, room_ids: list[UUID]) -> dict[UUID, Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.room_id.in_(room_ids))
            .order_by(MessageModel.room_id, MessageModel.seq.desc())
            .distinct(MessageModel.room_id)
        )
        result = await self._session.execute(stmt)
        return {m.room_id: message_mapper.model_to_entity(m) for m in result.scalars().all()}


class RoomWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._reader = RoomReaderRepo(session)

    async def create_if_not_exists(self, room: Room) -> tuple[Room, bool]:
        """Insert the room keyed by its sorted pair. Returns (room, created_flag)."""
        model = mapper.entity_to_model(room)
        stmt = (
            pg_insert(RoomModel)
            .values(
                id=model.id,
                user_low_id=model.user_low_id,
                user_high_id=model.user_high_id,
                last_notification_sent=model.last_notification_sent,
                created_at=model.created_at,
            )
            .on_conflict_do_nothing(constraint="uq_room_pair")
            .returning(RoomModel.id)
        )
        result = await self._session.execute(stmt)
        inserted = result.scalar_one_or_none()

        if inserted is not None:
            await self._session.execute(
                pg_insert(ParticipantModel).values(
                    [
                        {
                            "room_id": room.room_id,
                            "user_id": p.user_id,
                            "display_name": p.display_name,
                            "role": str(p.role),
                        }
                        for p in room.participants
                    ]
                )
            )
            return room, True

        # Conflict: another writer created the pair first
        existing = await self._reader.get_by_pair(model.user_low_id, model.user_high_id)
        assert existing is not None
        return existing, False

    async def touch_last_message_at(self, room_id: UUID, ts: datetime) -> None:
        stmt = (
            update(RoomModel)
            .where(RoomModel.id == room_id)
            .values(last_message_at=func.greatest(func.coalesce(RoomModel.last_message_at, ts), ts))
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)

    async def record_notification(self, room_id: UUID, user_id: str, ts: datetime) -> None:
        patch = cast({user_id: ts.isoformat()}, JSONB)
        stmt = (
            update(RoomModel)
            .where(RoomModel.id == room_id)
            .values(last_notification_sent=RoomModel.last_notification_sent.op("||")(patch))
            .execution_options(synchronize_session=False)
        )
        await self._session.execute(stmt)
