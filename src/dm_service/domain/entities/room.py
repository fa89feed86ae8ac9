from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from dm_service.domain.entities.participant import Participant


@dataclass(frozen=True, slots=True)
class Room:
    """A two-party conversation. Participants are kept sorted by user id."""

    room_id: UUID
    participants: tuple[Participant, ...]
    created_at: datetime
    last_message_at: datetime | None = None
    last_notification_sent: dict[str, datetime] = field(default_factory=dict)

    def has_participant(self, user_id: str) -> bool:
        return any(p.user_id == user_id for p in self.participants)

    def participant(self, user_id: str) -> Participant | None:
        for p in self.participants:
            if p.user_id == user_id:
                return p
        return None

    def counterpart(self, user_id: str) -> Participant | None:
        for p in self.participants:
            if p.user_id != user_id:
                return p
        return None


def pair_key(user_a: str, user_b: str) -> tuple[str, str]:
    """Order-independent key of a participant pair."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)
