"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

PING = "ping"
PONG = "pong"
JOIN = "join"
JOINED = "joined"
LEAVE = "leave"
LEFT = "left"
TYPING = "typing"
ERROR = "error"


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # ping | join | leave | typing
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # chat.* events | joined | left | pong | error
    data: dict[str, Any] = {}


class RoomRef(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    room_id: UUID


class TypingData(RoomRef):
    is_typing: bool = True

