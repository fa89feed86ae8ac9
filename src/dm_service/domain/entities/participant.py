from __future__ import annotations

from dataclasses import dataclass

from dm_service.domain.value_objects.enums import ParticipantRole


@dataclass(frozen=True, slots=True)
class Participant:
    user_id: str
    display_name: str
    role: ParticipantRole = ParticipantRole.OTHER
