from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from dm_service.application.dto.room import RoomSummary, UnseenDigest
from dm_service.domain.entities.room import Room


class RoomReader(Protocol):
    async def get_by_id(self, room_id: UUID) -> Room | None: ...

    async def get_by_pair(self, user_a: str, user_b: str) -> Room | None: ...

    async def list_summaries_for_user(self, user_id: str) -> list[RoomSummary]:
        """Rooms containing the user, most recently active first."""
        ...

    async def list_unseen_digests(self) -> list[UnseenDigest]: ...


class RoomWriter(Protocol):
    async def create_if_not_exists(self, room: Room) -> tuple[Room, bool]:
        """Insert the room. If a room for the same pair exists, return it with created=False."""
        ...

    async def touch_last_message_at(self, room_id: UUID, ts: datetime) -> None: ...

    async def record_notification(self, room_id: UUID, user_id: str, ts: datetime) -> None: ...
