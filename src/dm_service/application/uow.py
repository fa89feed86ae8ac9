from __future__ import annotations

from typing import Protocol

from dm_service.application.repositories.message import MessageReader, MessageWriter
from dm_service.application.repositories.room import RoomReader, RoomWriter


class UnitOfWork(Protocol):
    rooms: RoomReader
    rooms_w: RoomWriter
    messages: MessageReader
    messages_w: MessageWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...
