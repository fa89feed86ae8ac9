from __future__ import annotations

import uuid
from datetime import datetime

from dm_service.application.dto.room import RoomSummary
from dm_service.application.exceptions import BadRequestError
from dm_service.application.policies.permissions import assert_room_exists
from dm_service.application.ports.clock import Clock, SystemClock
from dm_service.application.uow import UnitOfWork
from dm_service.domain.entities.message import Message
from dm_service.domain.entities.participant import Participant
from dm_service.domain.entities.room import Room
from dm_service.domain.value_objects.enums import ParticipantRole

MAX_HISTORY_LIMIT = 200


async def find_or_create_room(
    party_a_id: str,
    party_b_id: str,
    uow: UnitOfWork,
    *,
    party_a_name: str | None = None,
    party_b_name: str | None = None,
    clock: Clock | None = None,
) -> tuple[Room, bool]:
    """Return the room for the unordered pair, creating it if needed.

    Returns (room, created). Concurrent callers for the same pair converge on one
    room: the writer enforces a unique constraint on the sorted pair.
    """
    if not party_a_id or not party_b_id:
        raise BadRequestError("partyAId and partyBId are required")
    if party_a_id == party_b_id:
        raise BadRequestError("A room needs two distinct participants")

    existing = await uow.rooms.get_by_pair(party_a_id, party_b_id)
    if existing is not None:
        return existing, False

    participants = sorted(
        [
            Participant(party_a_id, party_a_name or party_a_id, ParticipantRole.PARTY_A),
            Participant(party_b_id, party_b_name or party_b_id, ParticipantRole.PARTY_B),
        ],
        key=lambda p: p.user_id,
    )
    room = Room(
        room_id=uuid.uuid4(),
        participants=tuple(participants),
        created_at=(clock or SystemClock()).now(),
    )
    room, created = await uow.rooms_w.create_if_not_exists(room)
    await uow.commit()
    return room, created


async def list_rooms_for_user(user_id: str, uow: UnitOfWork) -> list[RoomSummary]:
    if not user_id:
        raise BadRequestError("userId is required")
    return await uow.rooms.list_summaries_for_user(user_id)


async def get_messages(
    room_id: uuid.UUID,
    limit: int,
    before: datetime | None,
    uow: UnitOfWork,
) -> list[Message]:
    room = await uow.rooms.get_by_id(room_id)
    assert_room_exists(room)
    limit = max(1, min(limit, MAX_HISTORY_LIMIT))
    return await uow.messages.list_messages(room_id, limit=limit, before=before)
