from __future__ import annotations

from uuid import UUID

from dm_service.domain.entities.participant import Participant
from dm_service.domain.value_objects.enums import ParticipantRole
from dm_service.infrastructure.db.models.participant import ParticipantModel


def model_to_entity(model: ParticipantModel) -> Participant:
    return Participant(
        user_id=model.user_id,
        display_name=model.display_name,
        role=ParticipantRole(model.role),
    )


def entity_to_model(entity: Participant, room_id: UUID) -> ParticipantModel:
    return ParticipantModel(
        room_id=room_id,
        user_id=entity.user_id,
        display_name=entity.display_name,
        role=str(entity.role),
    )
