from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from dm_service.application.dto.message import SeenUpdate
from dm_service.application.dto.views import MessageView, SeenUpdateView
from dm_service.domain.entities.message import Message

MESSAGE_CREATED = "chat.message_created"
MESSAGE_EDITED = "chat.message_edited"
MESSAGE_DELETED = "chat.message_deleted"
MESSAGES_SEEN = "chat.messages_seen"
TYPING = "chat.typing"


@dataclass(frozen=True, slots=True)
class ChatEvent:
    event_type: str
    payload: dict[str, Any]


def message_created(message: Message) -> ChatEvent:
    return ChatEvent(MESSAGE_CREATED, {"message": _dump_message(message)})


def message_edited(message: Message) -> ChatEvent:
    return ChatEvent(MESSAGE_EDITED, {"message": _dump_message(message)})


def message_deleted(message_id: UUID) -> ChatEvent:
    return ChatEvent(MESSAGE_DELETED, {"messageId": str(message_id)})


def messages_seen(user_id: str, updates: list[SeenUpdate]) -> ChatEvent:
    return ChatEvent(
        MESSAGES_SEEN,
        {
            "userId": user_id,
            "messages": [
                SeenUpdateView.model_validate(u).model_dump(mode="json", by_alias=True)
                for u in updates
            ],
        },
    )


def typing(user_id: str, is_typing: bool) -> ChatEvent:
    return ChatEvent(TYPING, {"senderId": user_id, "isTyping": is_typing})


def _dump_message(message: Message) -> dict[str, Any]:
    return MessageView.model_validate(message).model_dump(mode="json", by_alias=True)
