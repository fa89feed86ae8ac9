from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field

from dm_service.application.dto.message import AttachmentInput
from dm_service.application.dto.views import CamelModel, MessageView
from dm_service.domain.value_objects.enums import StorageKind


class HistoryRequest(CamelModel):
    room_id: UUID
    limit: int = 50
    before: datetime | None = None


class HistoryResponse(CamelModel):
    messages: list[MessageView]


class AttachmentIn(CamelModel):
    original_name: str = "file"
    mime_type: str = "application/octet-stream"
    size: int = Field(default=0, ge=0)
    storage_kind: StorageKind = StorageKind.REMOTE
    url: str | None = None
    path: str | None = None
    blob_ref: str | None = None
    width: int | None = None
    height: int | None = None
    duration_seconds: float | None = None
    thumbnail_url: str | None = None

    def to_input(self) -> AttachmentInput:
        return AttachmentInput(**self.model_dump())


class SendMessageRequest(CamelModel):
    room_id: UUID
    sender_id: str
    text: str | None = None
    reply_to: UUID | None = None
    attachments: list[AttachmentIn] = []


class MessageDataResponse(CamelModel):
    message_data: MessageView


class EditMessageRequest(CamelModel):
    room_id: UUID
    message_id: UUID
    sender_id: str
    new_text: str


class DeleteMessageRequest(CamelModel):
    room_id: UUID
    message_id: UUID
    sender_id: str


class DeleteMessageResponse(CamelModel):
    message_id: UUID
