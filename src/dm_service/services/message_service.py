from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Sequence

from dm_service.application.dto import events
from dm_service.application.dto.message import AttachmentInput, UploadedFile
from dm_service.application.exceptions import BadRequestError, InternalError
from dm_service.application.policies.permissions import assert_room_exists, assert_sender
from dm_service.application.ports.clock import Clock, SystemClock
from dm_service.application.ports.notify import Notification
from dm_service.application.ports.storage import StoredBlob
from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.attachment import (
    Attachment,
    BlobStorage,
    LocalStorage,
    RemoteStorage,
)
from dm_service.domain.entities.message import Message, ReplySnapshot
from dm_service.domain.entities.room import Room
from dm_service.domain.value_objects.enums import StorageKind
from dm_service.services.attachment_service import AttachmentStorage
from dm_service.services.hooks import SideEffects, chat_link

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 120
DEFAULT_MAX_FILES = 10


class MessageService:
    """Builds, validates and persists messages, then fires broadcast/notify hooks."""

    def __init__(
        self,
        uow: UnitOfWork,
        storage: AttachmentStorage,
        side_effects: SideEffects,
        *,
        clock: Clock | None = None,
        upload_timeout: float | None = None,
        max_files: int = DEFAULT_MAX_FILES,
        file_url_prefix: str = "/file",
    ) -> None:
        self._uow = uow
        self._storage = storage
        self._side_effects = side_effects
        self._clock = clock or SystemClock()
        self._upload_timeout = upload_timeout
        self._max_files = max_files
        self._file_url_prefix = file_url_prefix.rstrip("/")

    async def send_text_message(
        self,
        room_id: uuid.UUID,
        sender_id: str,
        text: str | None,
        reply_to: uuid.UUID | None = None,
        attachments: Sequence[AttachmentInput] = (),
    ) -> Message:
        text = text or ""
        if not text.strip() and not attachments:
            raise BadRequestError("roomId, senderId and (text or attachments) are required")
        room = assert_room_exists(await self._uow.rooms.get_by_id(room_id))
        assert_sender(room, sender_id)

        normalized = [await self._attachment_from_input(a) for a in attachments]
        message = await self._build(room, sender_id, text, reply_to, normalized)
        message = await self._append(message)
        self._announce_new(room, message)
        return message

    async def send_file_message(
        self,
        room_id: uuid.UUID,
        sender_id: str,
        text: str | None,
        files: Sequence[UploadedFile],
        reply_to: uuid.UUID | None = None,
    ) -> Message:
        text = text or ""
        room = assert_room_exists(await self._uow.rooms.get_by_id(room_id))
        assert_sender(room, sender_id)
        if not files and not text.strip():
            raise BadRequestError("Provide at least one file or text")
        if len(files) > self._max_files:
            raise BadRequestError(f"At most {self._max_files} files per message")

        stored = await self._upload(files)
        attachments = [
            Attachment(
                attachment_id=uuid.uuid4(),
                original_name=blob.original_name,
                mime_type=blob.content_type,
                size=blob.length,
                storage=BlobStorage(blob_id=blob.blob_id, filename=blob.filename),
                url=f"{self._file_url_prefix}/{blob.filename}",
            )
            for blob in stored
        ]
        try:
            message = await self._build(room, sender_id, text, reply_to, attachments)
            message = await self._append(message)
        except BaseException:
            await self._discard_blobs(stored)
            raise
        self._announce_new(room, message, prefer_attachments=True)
        return message

    async def edit_message(
        self,
        room_id: uuid.UUID,
        message_id: uuid.UUID,
        sender_id: str,
        new_text: str,
    ) -> Message:
        if new_text is None:
            raise BadRequestError("newText is required")
        room = assert_room_exists(await self._uow.rooms.get_by_id(room_id))
        if not new_text.strip():
            current = await self._uow.messages.get(room_id, message_id)
            if current is not None and current.sender_id == sender_id and not current.attachments:
                raise BadRequestError("Text may be empty only when the message has attachments")
        message = await self._uow.messages_w.update_text(
            room_id, message_id, sender_id, new_text, self._clock.now(),
        )
        await self._uow.commit()

        self._side_effects.broadcast(room_id, events.message_edited(message))
        self._notify_counterpart(
            room,
            sender_id,
            type_="chat.message.edited",
            title="Message edited by {name}",
            body=new_text[:PREVIEW_LENGTH],
        )
        return message

    async def delete_message(
        self,
        room_id: uuid.UUID,
        message_id: uuid.UUID,
        sender_id: str,
    ) -> uuid.UUID:
        room = assert_room_exists(await self._uow.rooms.get_by_id(room_id))
        removed = await self._uow.messages_w.delete(room_id, message_id, sender_id)
        shared = await self._uow.messages.shared_storage(removed.attachments)
        await self._uow.commit()

        for attachment in removed.attachments:
            if attachment.attachment_id in shared:
                logger.info(
                    "Keeping bytes of attachment %s, still referenced by another message",
                    attachment.attachment_id,
                )
                continue
            try:
                await self._storage.discard(attachment)
            except Exception:
                logger.exception(
                    "Failed to remove bytes of attachment %s (message %s)",
                    attachment.attachment_id,
                    message_id,
                )

        self._side_effects.broadcast(room_id, events.message_deleted(message_id))
        self._notify_counterpart(
            room,
            sender_id,
            type_="chat.message.deleted",
            title="Message deleted by {name}",
            body="",
        )
        return message_id

    async def _build(
        self,
        room: Room,
        sender_id: str,
        text: str,
        reply_to: uuid.UUID | None,
        attachments: Sequence[Attachment],
    ) -> Message:
        reply = None
        if reply_to is not None:
            target = await self._uow.messages.get(room.room_id, reply_to)
            if target is not None:
                reply = ReplySnapshot.of(target)
        return Message(
            message_id=uuid.uuid4(),
            room_id=room.room_id,
            sender_id=sender_id,
            text=text,
            timestamp=self._clock.now(),
            reply_to=reply_to,
            reply=reply,
            attachments=tuple(attachments),
        )

    async def _append(self, message: Message) -> Message:
        try:
            message = await self._uow.messages_w.append(message)
            await self._uow.rooms_w.touch_last_message_at(message.room_id, message.timestamp)
            await self._uow.commit()
        except BaseException:
            await self._uow.rollback()
            raise
        return message

    async def _upload(self, files: Sequence[UploadedFile]) -> list[StoredBlob]:
        stored: list[StoredBlob] = []
        try:
            async with asyncio.timeout(self._upload_timeout):
                for f in files:
                    blob = await self._storage.blobs.put(
                        f.data,
                        original_name=f.filename or "file",
                        content_type=f.content_type or "application/octet-stream",
                        metadata={"kind": "chat_attachment"},
                    )
                    stored.append(blob)
        except TimeoutError as exc:
            await self._discard_blobs(stored)
            raise InternalError("Attachment upload timed out") from exc
        except BaseException:
            await self._discard_blobs(stored)
            raise
        return stored

    async def _discard_blobs(self, blobs: Sequence[StoredBlob]) -> None:
        for blob in blobs:
            try:
                await self._storage.blobs.delete(blob.blob_id)
            except Exception:
                logger.exception("Failed to discard orphaned blob %s", blob.blob_id)

    async def _attachment_from_input(self, data: AttachmentInput) -> Attachment:
        kind = data.storage_kind
        url = data.url
        if kind == StorageKind.LOCAL:
            if not data.path or not self._storage.files.contains(data.path):
                raise BadRequestError("Local attachments need a path inside the upload directory")
            storage = LocalStorage(path=data.path)
        elif kind == StorageKind.BLOB:
            blob = await self._storage.blobs.get_by_filename(data.blob_ref or "")
            if blob is None:
                raise BadRequestError(f"Unknown blob reference: {data.blob_ref}")
            storage = BlobStorage(blob_id=blob.blob_id, filename=blob.filename)
            url = url or f"{self._file_url_prefix}/{blob.filename}"
        else:
            if not url:
                raise BadRequestError("Remote attachments need a url")
            storage = RemoteStorage(url=url)
        return Attachment(
            attachment_id=uuid.uuid4(),
            original_name=data.original_name or "file",
            mime_type=data.mime_type or "application/octet-stream",
            size=int(data.size or 0),
            storage=storage,
            url=url,
            width=data.width,
            height=data.height,
            duration_seconds=data.duration_seconds,
            thumbnail_url=data.thumbnail_url,
        )

    def _announce_new(
        self, room: Room, message: Message, *, prefer_attachments: bool = False,
    ) -> None:
        self._side_effects.broadcast(room.room_id, events.message_created(message))
        self._notify_counterpart(
            room,
            message.sender_id,
            type_="chat.message",
            title="New message from {name}",
            body=message_preview(message, prefer_attachments=prefer_attachments),
        )

    def _notify_counterpart(
        self,
        room: Room,
        sender_id: str,
        *,
        type_: str,
        title: str,
        body: str,
    ) -> None:
        sender = room.participant(sender_id)
        other = room.counterpart(sender_id)
        if other is None:
            return
        self._side_effects.notify(
            Notification(
                recipient_id=other.user_id,
                title=title.format(name=sender.display_name if sender else "Someone"),
                body=body,
                link=chat_link(other.role, room.room_id),
                type=type_,
            )
        )


def message_preview(message: Message, *, prefer_attachments: bool = False) -> str:
    """Short notification body: the text, or an attachment count."""
    count = len(message.attachments)
    if count and (prefer_attachments or not message.text.strip()):
        return f"{count} attachment(s)"
    if message.text.strip():
        return message.text[:PREVIEW_LENGTH]
    return "New message"
