"""Delete stored blobs that no attachment references (e.g. uploads whose message never landed)."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from dm_service.config import settings
from dm_service.infrastructure.blob.pg_blob_store import PgBlobStore
from dm_service.infrastructure.db.session import AsyncSessionLocal, engine
from dm_service.logging_setup import configure_logging

logger = logging.getLogger(__name__)


async def purge(grace_seconds: int) -> int:
    store = PgBlobStore(AsyncSessionLocal, chunk_size=settings.BLOB_CHUNK_SIZE)
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=grace_seconds)
    try:
        removed = await store.purge_orphans(cutoff)
    finally:
        await engine.dispose()
    logger.info("Purged %d orphan blobs older than %s", removed, cutoff.isoformat())
    return removed


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(purge(settings.ORPHAN_BLOB_GRACE_SECONDS))


if __name__ == "__main__":
    main()
