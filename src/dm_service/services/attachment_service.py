"""Resolution of attachments to servable byte sources."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from uuid import UUID

from dm_service.application.exceptions import NotFoundError
from dm_service.application.policies.permissions import assert_room_access
from dm_service.application.ports.storage import BlobStore, ByteSource, LocalFiles, StoredBlob
from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.attachment import (
    Attachment,
    BlobStorage,
    LocalStorage,
    RemoteStorage,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Redirect:
    url: str


class AttachmentStorage:
    """Single entry point over the local / remote / blob storage variants."""

    def __init__(self, blobs: BlobStore, files: LocalFiles) -> None:
        self.blobs = blobs
        self.files = files

    async def resolve(self, attachment: Attachment) -> ByteSource | Redirect:
        storage = attachment.storage
        if isinstance(storage, BlobStorage):
            blob = await self.blobs.get(storage.blob_id)
            if blob is None:
                raise NotFoundError("File not found")
            return self.blob_source(blob, filename=attachment.original_name)
        if isinstance(storage, LocalStorage):
            size = await self.files.size(storage.path)
            if size is None:
                raise NotFoundError("File not found on disk")
            return ByteSource(
                filename=attachment.original_name,
                content_type=attachment.mime_type,
                length=size,
                reader=partial(self.files.read, storage.path),
            )
        if isinstance(storage, RemoteStorage) and storage.url:
            return Redirect(storage.url)
        raise NotFoundError("Attachment is not downloadable")

    def blob_source(self, blob: StoredBlob, *, filename: str | None = None) -> ByteSource:
        return ByteSource(
            filename=filename or blob.original_name,
            content_type=blob.content_type,
            length=blob.length,
            reader=partial(self.blobs.read, blob),
            immutable=True,
        )

    async def discard(self, attachment: Attachment) -> None:
        """Remove the backing bytes of an attachment. Remote content is left alone."""
        storage = attachment.storage
        if isinstance(storage, BlobStorage):
            if not await self.blobs.delete(storage.blob_id):
                logger.warning("Blob %s already gone", storage.blob_id)
        elif isinstance(storage, LocalStorage):
            await self.files.delete(storage.path)


async def open_room_attachment(
    room_id: UUID,
    attachment_id: UUID,
    user_id: str,
    uow: UnitOfWork,
    storage: AttachmentStorage,
) -> ByteSource | Redirect:
    room = await uow.rooms.get_by_id(room_id)
    assert_room_access(room, user_id)
    attachment = await uow.messages.find_attachment(room_id, attachment_id)
    if attachment is None:
        raise NotFoundError("Attachment not found")
    return await storage.resolve(attachment)


async def open_public_blob(filename: str, storage: AttachmentStorage) -> ByteSource:
    blob = await storage.blobs.get_by_filename(filename)
    if blob is None:
        raise NotFoundError("File not found")
    return storage.blob_source(blob)
