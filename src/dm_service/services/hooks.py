"""Best-effort side channels (broadcast + notify) dispatched after a commit."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine
from uuid import UUID

from dm_service.application.dto.events import ChatEvent
from dm_service.application.ports.bus import Broadcaster
from dm_service.application.ports.notify import Notification, Notifier

logger = logging.getLogger(__name__)


class SideEffects:
    """Fire-and-forget dispatcher. Failures are logged, never raised to the caller."""

    def __init__(self, broadcaster: Broadcaster, notifier: Notifier) -> None:
        self._broadcaster = broadcaster
        self._notifier = notifier
        self._tasks: set[asyncio.Task[None]] = set()

    def broadcast(self, room_id: UUID, event: ChatEvent) -> None:
        self._spawn(
            self._broadcaster.publish(room_id, event),
            f"broadcast {event.event_type} room={room_id}",
        )

    def notify(self, notification: Notification) -> None:
        self._spawn(
            self._notifier.notify(notification),
            f"notify {notification.type} recipient={notification.recipient_id}",
        )

    async def drain(self) -> None:
        """Wait for in-flight side effects (shutdown, tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, None], label: str) -> None:
        task = asyncio.create_task(self._guard(coro, label), name=label)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    @staticmethod
    async def _guard(coro: Coroutine[Any, Any, None], label: str) -> None:
        try:
            await coro
        except Exception:
            logger.exception("Side effect failed: %s", label)


def chat_link(role: str, room_id: UUID) -> str:
    """Client route of a room for a recipient with the given role."""
    return f"/{role}/messages/{room_id}"
