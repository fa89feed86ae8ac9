from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar
from uuid import UUID

from dm_service.domain.value_objects.enums import StorageKind


@dataclass(frozen=True, slots=True)
class LocalStorage:
    path: str

    kind: ClassVar[StorageKind] = StorageKind.LOCAL


@dataclass(frozen=True, slots=True)
class RemoteStorage:
    url: str

    kind: ClassVar[StorageKind] = StorageKind.REMOTE


@dataclass(frozen=True, slots=True)
class BlobStorage:
    blob_id: UUID
    filename: str

    kind: ClassVar[StorageKind] = StorageKind.BLOB


AttachmentStorage = LocalStorage | RemoteStorage | BlobStorage


@dataclass(frozen=True, slots=True)
class Attachment:
    attachment_id: UUID
    original_name: str
    mime_type: str
    size: int
    storage: AttachmentStorage
    url: str | None = None
    width: int | None = None
    height: int | None = None
    duration_seconds: float | None = None
    thumbnail_url: str | None = None

    @property
    def storage_kind(self) -> StorageKind:
        return self.storage.kind

    @property
    def blob_ref(self) -> str | None:
        if isinstance(self.storage, BlobStorage):
            return self.storage.filename
        return None
