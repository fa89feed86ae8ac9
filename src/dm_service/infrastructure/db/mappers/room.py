from __future__ import annotations

from datetime import datetime
from typing import Any

from dm_service.domain.entities.room import Room, pair_key
from dm_service.infrastructure.db.mappers import participant as participant_mapper
from dm_service.infrastructure.db.models.room import RoomModel


def _parse_notifications(raw: dict[str, Any] | None) -> dict[str, datetime]:
    result: dict[str, datetime] = {}
    for user_id, value in (raw or {}).items():
        if isinstance(value, str):
            result[user_id] = datetime.fromisoformat(value)
    return result


def model_to_entity(model: RoomModel) -> Room:
    participants = sorted(
        (participant_mapper.model_to_entity(p) for p in model.participants),
        key=lambda p: p.user_id,
    )
    return Room(
        room_id=model.id,
        participants=tuple(participants),
        created_at=model.created_at,
        last_message_at=model.last_message_at,
        last_notification_sent=_parse_notifications(model.last_notification_sent),
    )


def entity_to_model(entity: Room) -> RoomModel:
    low, high = pair_key(*(p.user_id for p in entity.participants))
    return RoomModel(
        id=entity.room_id,
        user_low_id=low,
        user_high_id=high,
        last_notification_sent={
            user_id: ts.isoformat() for user_id, ts in entity.last_notification_sent.items()
        },
        last_message_at=entity.last_message_at,
        created_at=entity.created_at,
    )
