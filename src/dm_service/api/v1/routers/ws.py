from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from dm_service.api.deps import SideEffectsDep, UoWFactory, UoWFactoryDep
from dm_service.application.dto import events
from dm_service.config import settings
from dm_service.infrastructure.ws import protocol
from dm_service.infrastructure.ws.manager import ConnectionManager
from dm_service.infrastructure.ws.protocol import RoomRef, TypingData, WsInbound
from dm_service.services.hooks import SideEffects

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

manager = ConnectionManager()


def get_manager() -> ConnectionManager:
    return manager


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    uow_factory: UoWFactoryDep,
    side_effects: SideEffectsDep,
    user_id: str = Query(..., alias="userId"),
) -> None:
    await manager.connect(websocket, user_id)

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{user_id}",
    )
    try:
        await _read_loop(websocket, user_id, uow_factory, side_effects)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", user_id)
    finally:
        heartbeat_task.cancel()
        manager.disconnect(websocket, user_id)


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await manager.send(ws, protocol.PONG)
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("Heartbeat stopped", exc_info=True)


async def _read_loop(
    ws: WebSocket,
    user_id: str,
    uow_factory: UoWFactory,
    side_effects: SideEffects,
) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except ValidationError:
            await manager.send(ws, protocol.ERROR, {"code": "invalid_payload"})
            continue

        try:
            if msg.type == protocol.PING:
                await manager.send(ws, protocol.PONG)

            elif msg.type == protocol.JOIN:
                ref = RoomRef.model_validate(msg.data)
                await _handle_join(ws, user_id, ref.room_id, uow_factory)

            elif msg.type == protocol.LEAVE:
                ref = RoomRef.model_validate(msg.data)
                manager.unsubscribe(user_id, ref.room_id)
                await manager.send(ws, protocol.LEFT, {"roomId": str(ref.room_id)})

            elif msg.type == protocol.TYPING:
                data = TypingData.model_validate(msg.data)
                if not manager.is_subscribed(user_id, data.room_id):
                    await manager.send(ws, protocol.ERROR, {"code": "not_joined"})
                    continue
                side_effects.broadcast(data.room_id, events.typing(user_id, data.is_typing))

            else:
                await manager.send(ws, protocol.ERROR, {"code": "unknown_type", "type": msg.type})
        except ValidationError as exc:
            await manager.send(
                ws, protocol.ERROR, {"code": "invalid_data", "detail": str(exc.errors()[0]["msg"])},
            )


async def _handle_join(
    ws: WebSocket, user_id: str, room_id: UUID, uow_factory: UoWFactory,
) -> None:
    async with uow_factory() as uow:
        room = await uow.rooms.get_by_id(room_id)
    if room is None or not room.has_participant(user_id):
        await manager.send(ws, protocol.ERROR, {"code": "forbidden", "roomId": str(room_id)})
        return
    manager.subscribe(user_id, room_id)
    await manager.send(ws, protocol.JOINED, {"roomId": str(room_id)})
