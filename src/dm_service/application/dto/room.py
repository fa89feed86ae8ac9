from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from dm_service.domain.entities.message import Message
from dm_service.domain.entities.participant import Participant
from dm_service.domain.value_objects.enums import ParticipantRole


@dataclass(frozen=True, slots=True)
class RoomSummary:
    room_id: UUID
    participants: tuple[Participant, ...]
    last_message: Message | None
    unseen_count: int


@dataclass(frozen=True, slots=True)
class UnseenDigest:
    """Unseen messages of one participant in one room, for the digest worker."""

    room_id: UUID
    user_id: str
    role: ParticipantRole
    unseen_count: int
    latest: Message | None
    last_notified_at: datetime | None
