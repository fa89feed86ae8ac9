from __future__ import annotations

from fastapi import APIRouter

from dm_service.api.deps import SeenTrackerDep, UoWDep
from dm_service.api.v1.schemas.common import ERROR_RESPONSES
from dm_service.api.v1.schemas.room import (
    CreateRoomRequest,
    CreateRoomResponse,
    ListRoomsRequest,
    ListRoomsResponse,
    MarkSeenRequest,
    MarkSeenResponse,
    UnseenCountRequest,
    UnseenCountResponse,
)
from dm_service.application.dto.views import RoomSummaryView, SeenUpdateView
from dm_service.services import room_service

router = APIRouter(prefix="/chat", tags=["rooms"], responses=ERROR_RESPONSES)


@router.post("/room", response_model=CreateRoomResponse)
async def create_room(body: CreateRoomRequest, uow: UoWDep) -> CreateRoomResponse:
    room, created = await room_service.find_or_create_room(
        body.party_a_id,
        body.party_b_id,
        uow,
        party_a_name=body.party_a_name,
        party_b_name=body.party_b_name,
    )
    return CreateRoomResponse(room_id=room.room_id, created=created)


@router.post("/rooms", response_model=ListRoomsResponse)
async def list_rooms(body: ListRoomsRequest, uow: UoWDep) -> ListRoomsResponse:
    summaries = await room_service.list_rooms_for_user(body.user_id, uow)
    return ListRoomsResponse(rooms=[RoomSummaryView.model_validate(s) for s in summaries])


@router.post("/unseen-count", response_model=UnseenCountResponse)
async def unseen_count(body: UnseenCountRequest, tracker: SeenTrackerDep) -> UnseenCountResponse:
    count = await tracker.get_unseen_count(body.room_id, body.user_id)
    return UnseenCountResponse(room_id=body.room_id, user_id=body.user_id, unseen_count=count)


@router.post("/mark-seen", response_model=MarkSeenResponse)
async def mark_seen(body: MarkSeenRequest, tracker: SeenTrackerDep) -> MarkSeenResponse:
    updated = await tracker.mark_seen(body.room_id, body.user_id, body.message_ids)
    return MarkSeenResponse(
        marked_count=len(updated),
        updated_messages=[SeenUpdateView.model_validate(u) for u in updated],
    )
