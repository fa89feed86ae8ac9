"""Create all tables: python -m dm_service.scripts.init_db"""
from __future__ import annotations

import asyncio
import logging

from dm_service.config import settings
from dm_service.infrastructure.db import models  # noqa: F401  registers every table
from dm_service.infrastructure.db.base import Base
from dm_service.infrastructure.db.session import engine
from dm_service.logging_setup import configure_logging

logger = logging.getLogger(__name__)


async def init_db() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Created tables: %s", ", ".join(sorted(Base.metadata.tables)))


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(init_db())


if __name__ == "__main__":
    main()
