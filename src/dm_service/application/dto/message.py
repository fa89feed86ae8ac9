from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from dm_service.domain.value_objects.enums import StorageKind


@dataclass(frozen=True, slots=True)
class UploadedFile:
    """Raw bytes of one file received with a send-file request."""

    filename: str
    content_type: str
    data: bytes


@dataclass(frozen=True, slots=True)
class AttachmentInput:
    """Reference to content that already lives somewhere (URL, local path or blob)."""

    original_name: str = "file"
    mime_type: str = "application/octet-stream"
    size: int = 0
    storage_kind: StorageKind = StorageKind.REMOTE
    url: str | None = None
    path: str | None = None
    blob_ref: str | None = None
    width: int | None = None
    height: int | None = None
    duration_seconds: float | None = None
    thumbnail_url: str | None = None


@dataclass(frozen=True, slots=True)
class SeenUpdate:
    message_id: UUID
    seen_by: tuple[str, ...]
