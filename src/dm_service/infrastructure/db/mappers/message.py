from __future__ import annotations

from typing import Any
from uuid import UUID

from dm_service.domain.entities.attachment import (
    Attachment,
    AttachmentStorage,
    BlobStorage,
    LocalStorage,
    RemoteStorage,
)
from dm_service.domain.entities.message import Message, ReplyAttachment, ReplySnapshot
from dm_service.domain.value_objects.enums import StorageKind
from dm_service.infrastructure.db.models.attachment import AttachmentModel
from dm_service.infrastructure.db.models.message import MessageModel


def _storage_from_model(model: AttachmentModel) -> AttachmentStorage:
    kind = StorageKind(model.storage_kind)
    if kind == StorageKind.BLOB:
        return BlobStorage(blob_id=model.blob_id, filename=model.blob_filename or "")
    if kind == StorageKind.LOCAL:
        return LocalStorage(path=model.path or "")
    return RemoteStorage(url=model.url or "")


def attachment_to_entity(model: AttachmentModel) -> Attachment:
    return Attachment(
        attachment_id=model.id,
        original_name=model.original_name,
        mime_type=model.mime_type,
        size=model.size,
        storage=_storage_from_model(model),
        url=model.url,
        width=model.width,
        height=model.height,
        duration_seconds=model.duration_seconds,
        thumbnail_url=model.thumbnail_url,
    )


def attachment_values(entity: Attachment, message_id: UUID, position: int) -> dict[str, Any]:
    storage = entity.storage
    return {
        "id": entity.attachment_id,
        "message_id": message_id,
        "position": position,
        "original_name": entity.original_name,
        "mime_type": entity.mime_type,
        "size": entity.size,
        "storage_kind": str(storage.kind),
        "url": entity.url,
        "path": storage.path if isinstance(storage, LocalStorage) else None,
        "blob_id": storage.blob_id if isinstance(storage, BlobStorage) else None,
        "blob_filename": storage.filename if isinstance(storage, BlobStorage) else None,
        "width": entity.width,
        "height": entity.height,
        "duration_seconds": entity.duration_seconds,
        "thumbnail_url": entity.thumbnail_url,
    }


def reply_to_json(reply: ReplySnapshot | None) -> dict[str, Any] | None:
    if reply is None:
        return None
    return {
        "messageId": str(reply.message_id),
        "senderId": reply.sender_id,
        "textExcerpt": reply.text_excerpt,
        "hasAttachment": reply.has_attachment,
        "attachment": (
            {
                "originalName": reply.attachment.original_name,
                "mimeType": reply.attachment.mime_type,
            }
            if reply.attachment is not None
            else None
        ),
    }


def reply_from_json(data: dict[str, Any] | None) -> ReplySnapshot | None:
    if not data:
        return None
    attachment = data.get("attachment")
    return ReplySnapshot(
        message_id=UUID(data["messageId"]),
        sender_id=data["senderId"],
        text_excerpt=data.get("textExcerpt", ""),
        has_attachment=bool(data.get("hasAttachment")),
        attachment=(
            ReplyAttachment(
                original_name=attachment["originalName"],
                mime_type=attachment["mimeType"],
            )
            if attachment
            else None
        ),
    )


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        message_id=model.id,
        room_id=model.room_id,
        sender_id=model.sender_id,
        text=model.text,
        timestamp=model.created_at,
        edited_at=model.edited_at,
        reply_to=model.reply_to,
        reply=reply_from_json(model.reply),
        attachments=tuple(attachment_to_entity(a) for a in model.attachments),
        seen_by=tuple(model.seen_by or ()),
    )


def message_values(entity: Message) -> dict[str, Any]:
    return {
        "id": entity.message_id,
        "room_id": entity.room_id,
        "sender_id": entity.sender_id,
        "text": entity.text,
        "created_at": entity.timestamp,
        "edited_at": entity.edited_at,
        "reply_to": entity.reply_to,
        "reply": reply_to_json(entity.reply),
        "seen_by": list(entity.seen_by),
    }
