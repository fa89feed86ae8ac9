from __future__ import annotations

from datetime import datetime
from typing import Sequence
from uuid import UUID

from sqlalchemy import String, delete, func, insert, literal, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dm_service.application.dto.message import SeenUpdate
from dm_service.application.exceptions import ForbiddenError, NotFoundError
from dm_service.domain.entities.attachment import Attachment, BlobStorage, LocalStorage
from dm_service.domain.entities.message import Message
from dm_service.infrastructure.db.mappers import message as mapper
from dm_service.infrastructure.db.models.attachment import AttachmentModel
from dm_service.infrastructure.db.models.message import MessageModel
from dm_service.infrastructure.db.repositories._filters import unseen_by


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_messages(
        self,
        room_id: UUID,
        *,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.room_id == room_id)
            .order_by(MessageModel.seq.desc())
            .limit(limit)
        )
        if before is not None:
            stmt = stmt.where(MessageModel.created_at < before)
        result = await self._session.execute(stmt)
        page = [mapper.model_to_entity(m) for m in result.scalars().all()]
        page.reverse()
        return page

    async def get(self, room_id: UUID, message_id: UUID) -> Message | None:
        model = await self._get_model(room_id, message_id)
        return mapper.model_to_entity(model) if model else None

    async def count_unseen(self, room_id: UUID, user_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(MessageModel)
            .where(MessageModel.room_id == room_id, *unseen_by(user_id))
        )
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    async def find_attachment(self, room_id: UUID, attachment_id: UUID) -> Attachment | None:
        stmt = (
            select(AttachmentModel)
            .join(MessageModel, MessageModel.id == AttachmentModel.message_id)
            .where(
                AttachmentModel.id == attachment_id,
                MessageModel.room_id == room_id,
            )
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.attachment_to_entity(model) if model else None

    async def shared_storage(self, attachments: Sequence[Attachment]) -> set[UUID]:
        """Ids of ``attachments`` whose blob or local file some other attachment also uses."""
        blob_ids = {a.storage.blob_id for a in attachments if isinstance(a.storage, BlobStorage)}
        paths = {a.storage.path for a in attachments if isinstance(a.storage, LocalStorage)}
        if not blob_ids and not paths:
            return set()

        stmt = select(AttachmentModel.blob_id, AttachmentModel.path).where(
            AttachmentModel.id.not_in([a.attachment_id for a in attachments]),
            or_(AttachmentModel.blob_id.in_(blob_ids), AttachmentModel.path.in_(paths)),
        )
        rows = (await self._session.execute(stmt)).all()
        used_blobs = {blob_id for blob_id, _path in rows if blob_id is not None}
        used_paths = {path for _blob_id, path in rows if path is not None}
        return {
            a.attachment_id
            for a in attachments
            if (isinstance(a.storage, BlobStorage) and a.storage.blob_id in used_blobs)
            or (isinstance(a.storage, LocalStorage) and a.storage.path in used_paths)
        }

    async def _get_model(self, room_id: UUID, message_id: UUID) -> MessageModel | None:
        stmt = (
            select(MessageModel)
            .where(MessageModel.id == message_id, MessageModel.room_id == room_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._reader = MessageReaderRepo(session)

    async def append(self, message: Message) -> Message:
        await self._session.execute(insert(MessageModel).values(**mapper.message_values(message)))
        if message.attachments:
            await self._session.execute(
                insert(AttachmentModel).values(
                    [
                        mapper.attachment_values(a, message.message_id, position)
                        for position, a in enumerate(message.attachments)
                    ]
                )
            )
        return message

    async def update_text(
        self,
        room_id: UUID,
        message_id: UUID,
        sender_id: str,
        text: str,
        edited_at: datetime,
    ) -> Message:
        await self._owned(room_id, message_id, sender_id)
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.id == message_id,
                MessageModel.room_id == room_id,
                MessageModel.sender_id == sender_id,
            )
            .values(text=text, edited_at=edited_at)
            .returning(MessageModel.id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.scalar_one_or_none() is None:
            raise NotFoundError("Message not found")

        updated = await self._reader.get(room_id, message_id)
        assert updated is not None
        return updated

    async def delete(self, room_id: UUID, message_id: UUID, sender_id: str) -> Message:
        existing = await self._owned(room_id, message_id, sender_id)
        stmt = (
            delete(MessageModel)
            .where(
                MessageModel.id == message_id,
                MessageModel.room_id == room_id,
                MessageModel.sender_id == sender_id,
            )
            .returning(MessageModel.id)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.scalar_one_or_none() is None:
            # lost a race with a concurrent delete
            raise NotFoundError("Message not found")
        return existing

    async def mark_seen(
        self,
        room_id: UUID,
        user_id: str,
        message_ids: Sequence[UUID] | None = None,
    ) -> list[SeenUpdate]:
        stmt = (
            update(MessageModel)
            .where(MessageModel.room_id == room_id, *unseen_by(user_id))
            .values(seen_by=func.array_append(MessageModel.seen_by, literal(user_id, String)))
            .returning(MessageModel.id, MessageModel.seen_by)
            .execution_options(synchronize_session=False)
        )
        if message_ids:
            stmt = stmt.where(MessageModel.id.in_(list(message_ids)))
        result = await self._session.execute(stmt)
        return [
            SeenUpdate(message_id=mid, seen_by=tuple(seen_by))
            for mid, seen_by in result.all()
        ]

    async def _owned(self, room_id: UUID, message_id: UUID, sender_id: str) -> Message:
        existing = await self._reader.get(room_id, message_id)
        if existing is None:
            raise NotFoundError("Message not found")
        if existing.sender_id != sender_id:
            raise ForbiddenError("You can only modify your own messages")
        return existing
