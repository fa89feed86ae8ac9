"""Unseen digest worker: periodically reminds participants about unread messages."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

import redis.asyncio as aioredis

from dm_service.application.ports.clock import Clock, SystemClock
from dm_service.application.ports.notify import Notification, Notifier
from dm_service.application.uow import UnitOfWork
from dm_service.config import settings
from dm_service.domain.entities.message import Message
from dm_service.infrastructure.bus.redis_pubsub import RedisNotifier
from dm_service.infrastructure.db.session import AsyncSessionLocal
from dm_service.infrastructure.db.uow import SqlAlchemyUoW
from dm_service.logging_setup import configure_logging
from dm_service.services.hooks import chat_link

logger = logging.getLogger(__name__)

TEASER_LENGTH = 140


def unseen_teaser(message: Message | None) -> str:
    if message is None:
        return ""
    text = message.text.strip()
    if text:
        return text[:TEASER_LENGTH]
    if message.attachments:
        return f"Attachment: {message.attachments[0].original_name}"
    return ""


async def notify_unseen(
    uow: UnitOfWork,
    notifier: Notifier,
    *,
    throttle: timedelta,
    clock: Clock | None = None,
) -> int:
    """Send one digest per (room, participant) with unseen messages, at most once per ``throttle``.

    Returns the number of notifications sent.
    """
    now: datetime = (clock or SystemClock()).now()
    sent = 0
    for digest in await uow.rooms.list_unseen_digests():
        if digest.unseen_count <= 0:
            continue
        if digest.last_notified_at is not None and now - digest.last_notified_at < throttle:
            continue
        count = digest.unseen_count
        notification = Notification(
            recipient_id=digest.user_id,
            title=f"You have {count} unread message{'s' if count > 1 else ''}",
            body=unseen_teaser(digest.latest),
            link=chat_link(digest.role, digest.room_id),
            type="chat.unseen",
        )
        try:
            await notifier.notify(notification)
        except Exception:
            logger.exception(
                "Failed to send unseen digest to %s (room %s)", digest.user_id, digest.room_id,
            )
            continue
        await uow.rooms_w.record_notification(digest.room_id, digest.user_id, now)
        await uow.commit()
        sent += 1
    return sent


async def run_unseen_notifier() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    notifier = RedisNotifier(redis, settings.REDIS_NOTIFY_CHANNEL)
    throttle = timedelta(seconds=settings.UNSEEN_NOTIFY_THROTTLE_SECONDS)

    logger.info(
        "Unseen notifier started (interval=%.0fs, throttle=%.0fs)",
        settings.UNSEEN_NOTIFY_INTERVAL_SECONDS,
        settings.UNSEEN_NOTIFY_THROTTLE_SECONDS,
    )

    try:
        while True:
            try:
                async with AsyncSessionLocal() as session:
                    sent = await notify_unseen(SqlAlchemyUoW(session), notifier, throttle=throttle)
                if sent:
                    logger.info("Sent %d unseen digests", sent)
            except Exception:
                logger.exception("Unseen notifier loop error")
            await asyncio.sleep(settings.UNSEEN_NOTIFY_INTERVAL_SECONDS)
    finally:
        await redis.aclose()


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(run_unseen_notifier())


if __name__ == "__main__":
    main()
