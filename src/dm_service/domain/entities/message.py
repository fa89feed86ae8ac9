from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from dm_service.domain.entities.attachment import Attachment

REPLY_EXCERPT_LENGTH = 200


@dataclass(frozen=True, slots=True)
class ReplyAttachment:
    original_name: str
    mime_type: str


@dataclass(frozen=True, slots=True)
class ReplySnapshot:
    """Point-in-time copy of the message being replied to. Not kept in sync."""

    message_id: UUID
    sender_id: str
    text_excerpt: str
    has_attachment: bool
    attachment: ReplyAttachment | None = None

    @classmethod
    def of(cls, target: Message) -> ReplySnapshot:
        first = target.attachments[0] if target.attachments else None
        return cls(
            message_id=target.message_id,
            sender_id=target.sender_id,
            text_excerpt=(target.text or "")[:REPLY_EXCERPT_LENGTH],
            has_attachment=first is not None,
            attachment=(
                ReplyAttachment(original_name=first.original_name, mime_type=first.mime_type)
                if first is not None
                else None
            ),
        )


@dataclass(frozen=True, slots=True)
class Message:
    message_id: UUID
    room_id: UUID
    sender_id: str
    text: str
    timestamp: datetime
    edited_at: datetime | None = None
    reply_to: UUID | None = None
    reply: ReplySnapshot | None = None
    attachments: tuple[Attachment, ...] = ()
    seen_by: tuple[str, ...] = ()

    def is_unseen_by(self, user_id: str) -> bool:
        return self.sender_id != user_id and user_id not in self.seen_by
