from __future__ import annotations

from dm_service.application.exceptions import ForbiddenError, NotFoundError
from dm_service.domain.entities.participant import Participant
from dm_service.domain.entities.room import Room


def assert_room_access(room: Room | None, user_id: str) -> Room:
    """Raise if the room doesn't exist or the user is not one of its two participants."""
    if room is None:
        raise NotFoundError("Chat room not found")
    if not room.has_participant(user_id):
        raise ForbiddenError("You are not a participant of this room")
    return room


def assert_room_exists(room: Room | None) -> Room:
    if room is None:
        raise NotFoundError("Chat room not found")
    return room


def assert_sender(room: Room, sender_id: str) -> Participant:
    participant = room.participant(sender_id)
    if participant is None:
        raise ForbiddenError("Sender is not a participant of this room")
    return participant
