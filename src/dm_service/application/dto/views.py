"""JSON views of domain objects, shared by the HTTP API and broadcast events."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ParticipantView(CamelModel):
    user_id: str
    display_name: str
    role: str


class AttachmentView(CamelModel):
    attachment_id: UUID
    original_name: str
    mime_type: str
    size: int
    storage_kind: str
    url: str | None = None
    blob_ref: str | None = None
    width: int | None = None
    height: int | None = None
    duration_seconds: float | None = None
    thumbnail_url: str | None = None


class ReplyAttachmentView(CamelModel):
    original_name: str
    mime_type: str


class ReplyView(CamelModel):
    message_id: UUID
    sender_id: str
    text_excerpt: str
    has_attachment: bool
    attachment: ReplyAttachmentView | None = None


class MessageView(CamelModel):
    message_id: UUID
    room_id: UUID
    sender_id: str
    text: str
    timestamp: datetime
    edited_at: datetime | None = None
    reply_to: UUID | None = None
    reply: ReplyView | None = None
    attachments: list[AttachmentView] = []
    seen_by: list[str] = []


class SeenUpdateView(CamelModel):
    message_id: UUID
    seen_by: list[str]


class RoomSummaryView(CamelModel):
    room_id: UUID
    participants: list[ParticipantView]
    last_message: MessageView | None = None
    unseen_count: int
