from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


@dataclass(frozen=True, slots=True)
class Envelope:
    event: str
    data: dict[str, Any]
    room_id: UUID | None = None


def serialize_event(event_type: str, payload: dict[str, Any], *, room_id: UUID | None = None) -> str:
    envelope: dict[str, Any] = {"event": event_type, "data": payload}
    if room_id is not None:
        envelope["roomId"] = room_id
    return json.dumps(envelope, cls=_Encoder)


def deserialize_event(raw: str | bytes) -> Envelope:
    data = json.loads(raw)
    room_id = data.get("roomId")
    return Envelope(
        event=data["event"],
        data=data.get("data") or {},
        room_id=UUID(room_id) if room_id else None,
    )
