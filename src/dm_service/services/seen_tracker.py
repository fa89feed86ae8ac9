from __future__ import annotations

import uuid
from typing import Sequence

from dm_service.application.dto import events
from dm_service.application.dto.message import SeenUpdate
from dm_service.application.policies.permissions import assert_room_access
from dm_service.application.ports.notify import Notification
from dm_service.application.uow import UnitOfWork
from dm_service.services.hooks import SideEffects, chat_link


class SeenTracker:
    def __init__(self, uow: UnitOfWork, side_effects: SideEffects) -> None:
        self._uow = uow
        self._side_effects = side_effects

    async def get_unseen_count(self, room_id: uuid.UUID, user_id: str) -> int:
        room = await self._uow.rooms.get_by_id(room_id)
        assert_room_access(room, user_id)
        return await self._uow.messages.count_unseen(room_id, user_id)

    async def mark_seen(
        self,
        room_id: uuid.UUID,
        user_id: str,
        message_ids: Sequence[uuid.UUID] | None = None,
    ) -> list[SeenUpdate]:
        """Mark messages as seen by ``user_id`` and return only the newly seen ones.

        An empty or missing ``message_ids`` sweeps every message the user has not
        seen yet. Repeating the call returns an empty delta and fires no hooks.
        """
        room = assert_room_access(await self._uow.rooms.get_by_id(room_id), user_id)
        updated = await self._uow.messages_w.mark_seen(room_id, user_id, message_ids or None)
        await self._uow.commit()
        if not updated:
            return []

        self._side_effects.broadcast(room_id, events.messages_seen(user_id, updated))
        viewer = room.participant(user_id)
        other = room.counterpart(user_id)
        if other is not None:
            count = len(updated)
            self._side_effects.notify(
                Notification(
                    recipient_id=other.user_id,
                    title=f"{viewer.display_name if viewer else 'Participant'} viewed your messages",
                    body=f"{count} message{'s' if count > 1 else ''} viewed.",
                    link=chat_link(other.role, room_id),
                    type="chat.seen",
                )
            )
        return updated
