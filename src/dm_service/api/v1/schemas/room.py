from __future__ import annotations

from uuid import UUID

from dm_service.application.dto.views import CamelModel, RoomSummaryView, SeenUpdateView


class CreateRoomRequest(CamelModel):
    party_a_id: str
    party_b_id: str
    party_a_name: str | None = None
    party_b_name: str | None = None


class CreateRoomResponse(CamelModel):
    room_id: UUID
    created: bool


class ListRoomsRequest(CamelModel):
    user_id: str


class ListRoomsResponse(CamelModel):
    rooms: list[RoomSummaryView]


class UnseenCountRequest(CamelModel):
    room_id: UUID
    user_id: str


class UnseenCountResponse(CamelModel):
    room_id: UUID
    user_id: str
    unseen_count: int


class MarkSeenRequest(CamelModel):
    room_id: UUID
    user_id: str
    message_ids: list[UUID] | None = None


class MarkSeenResponse(CamelModel):
    marked_count: int
    updated_messages: list[SeenUpdateView]
