"""Redis Pub/Sub: broadcast + notification publishers and the subscriber background task."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine
from uuid import UUID

import redis.asyncio as aioredis

from dm_service.application.dto.events import ChatEvent
from dm_service.application.ports.notify import Notification
from dm_service.infrastructure.bus.serializer import Envelope, deserialize_event, serialize_event

logger = logging.getLogger(__name__)


class RedisBroadcaster:
    """Implements application.ports.bus.Broadcaster."""

    def __init__(self, redis: aioredis.Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def publish(self, room_id: UUID, event: ChatEvent) -> None:
        raw = serialize_event(event.event_type, event.payload, room_id=room_id)
        await self._redis.publish(self._channel, raw)


class RedisNotifier:
    """Implements application.ports.notify.Notifier.

    Delivery (push, e-mail, in-app inbox) belongs to whoever consumes the channel.
    """

    def __init__(self, redis: aioredis.Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel

    async def notify(self, notification: Notification) -> None:
        payload = {
            "recipientId": notification.recipient_id,
            "title": notification.title,
            "body": notification.body,
            "link": notification.link,
            "type": notification.type,
        }
        await self._redis.publish(self._channel, serialize_event(notification.type, payload))


OnEventCallback = Callable[[Envelope], Coroutine[Any, Any, None]]


class RedisPubSubSubscriber:
    """Background task that listens to a Redis channel and dispatches envelopes."""

    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        callback: OnEventCallback,
    ) -> None:
        self._redis = redis
        self._channel = channel
        self._callback = callback
        self._task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        self._task = asyncio.create_task(self._listen(), name="redis-pubsub-subscriber")
        logger.info("Redis Pub/Sub subscriber started on channel=%s", self._channel)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            logger.info("Redis Pub/Sub subscriber stopped")

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    await self._callback(deserialize_event(message["data"]))
                except Exception:
                    logger.exception("Error processing pubsub message")
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()
