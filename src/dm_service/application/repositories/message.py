from __future__ import annotations

from datetime import datetime
from typing import Protocol, Sequence
from uuid import UUID

from dm_service.application.dto.message import SeenUpdate
from dm_service.domain.entities.attachment import Attachment
from dm_service.domain.entities.message import Message


class MessageReader(Protocol):
    async def list_messages(
        self,
        room_id: UUID,
        *,
        limit: int = 50,
        before: datetime | None = None,
    ) -> list[Message]:
        """Most recent page (optionally older than ``before``), oldest first."""
        ...

    async def get(self, room_id: UUID, message_id: UUID) -> Message | None: ...

    async def count_unseen(self, room_id: UUID, user_id: str) -> int: ...

    async def find_attachment(self, room_id: UUID, attachment_id: UUID) -> Attachment | None: ...

    async def shared_storage(self, attachments: Sequence[Attachment]) -> set[UUID]:
        """Ids of ``attachments`` whose backing bytes another attachment still references."""
        ...


class MessageWriter(Protocol):
    async def append(self, message: Message) -> Message: ...

    async def update_text(
        self,
        room_id: UUID,
        message_id: UUID,
        sender_id: str,
        text: str,
        edited_at: datetime,
    ) -> Message:
        """Raise NotFoundError if missing, ForbiddenError if sender_id is not the author."""
        ...

    async def delete(self, room_id: UUID, message_id: UUID, sender_id: str) -> Message:
        """Hard-delete and return the removed message. Same errors as update_text."""
        ...

    async def mark_seen(
        self,
        room_id: UUID,
        user_id: str,
        message_ids: Sequence[UUID] | None = None,
    ) -> list[SeenUpdate]:
        """Add user_id to seen_by of every matching message not sent by and not yet seen by
        the user, in one atomic statement. Returns only the messages that changed."""
        ...
