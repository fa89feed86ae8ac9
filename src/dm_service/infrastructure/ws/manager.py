"""In-process WebSocket connection manager."""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from fastapi import WebSocket

from dm_service.infrastructure.bus.serializer import Envelope
from dm_service.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks WebSocket connections per user and room subscriptions."""

    def __init__(self) -> None:
        self._connections: dict[str, set[WebSocket]] = {}
        self._subscriptions: dict[UUID, set[str]] = {}

    async def connect(self, ws: WebSocket, user_id: str) -> None:
        await ws.accept()
        self._connections.setdefault(user_id, set()).add(ws)
        logger.debug("WS connected: %s (total=%d)", user_id, len(self._connections))

    def disconnect(self, ws: WebSocket, user_id: str) -> None:
        conns = self._connections.get(user_id)
        if conns:
            conns.discard(ws)
            if not conns:
                del self._connections[user_id]
        if user_id not in self._connections:
            for room_id in list(self._subscriptions):
                self.unsubscribe(user_id, room_id)
        logger.debug("WS disconnected: %s", user_id)

    def subscribe(self, user_id: str, room_id: UUID) -> None:
        self._subscriptions.setdefault(room_id, set()).add(user_id)

    def unsubscribe(self, user_id: str, room_id: UUID) -> None:
        subs = self._subscriptions.get(room_id)
        if subs:
            subs.discard(user_id)
            if not subs:
                del self._subscriptions[room_id]

    def is_subscribed(self, user_id: str, room_id: UUID) -> bool:
        return user_id in self._subscriptions.get(room_id, set())

    async def dispatch(self, envelope: Envelope) -> None:
        """Pub/Sub callback: forward a broadcast envelope to the room's local sockets."""
        if envelope.room_id is None:
            return
        await self.broadcast_to_room(envelope.room_id, envelope.event, envelope.data)

    async def broadcast_to_room(
        self,
        room_id: UUID,
        event_type: str,
        data: dict[str, Any],
    ) -> None:
        """Send a WS message to all users subscribed to a room."""
        subs = self._subscriptions.get(room_id, set())
        raw = WsOutbound(type=event_type, data={"roomId": str(room_id), **data}).model_dump_json()
        dead: list[tuple[str, WebSocket]] = []
        for user_id in list(subs):
            for ws in list(self._connections.get(user_id, set())):
                try:
                    await ws.send_text(raw)
                except Exception:
                    dead.append((user_id, ws))
        for user_id, ws in dead:
            self.disconnect(ws, user_id)

    async def send(self, ws: WebSocket, event_type: str, data: dict[str, Any] | None = None) -> None:
        await ws.send_text(WsOutbound(type=event_type, data=data or {}).model_dump_json())
