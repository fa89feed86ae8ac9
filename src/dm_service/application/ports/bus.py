from __future__ import annotations

from typing import Protocol
from uuid import UUID

from dm_service.application.dto.events import ChatEvent


class Broadcaster(Protocol):
    """Real-time transport towards the clients of one room."""

    async def publish(self, room_id: UUID, event: ChatEvent) -> None: ...
