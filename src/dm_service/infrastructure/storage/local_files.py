"""Attachments stored as files under a local upload directory."""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import AsyncGenerator

logger = logging.getLogger(__name__)

READ_SIZE = 64 * 1024


class LocalFileStore:
    """Implements application.ports.storage.LocalFiles.

    Paths are resolved against ``root``; anything resolving outside it is
    treated as missing.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def _resolve(self, path: str) -> Path | None:
        candidate = (self._root / path).resolve()
        if candidate == self._root or self._root not in candidate.parents:
            return None
        return candidate

    def contains(self, path: str) -> bool:
        return self._resolve(path) is not None

    async def size(self, path: str) -> int | None:
        target = self._resolve(path)
        if target is None:
            return None
        return await asyncio.to_thread(_file_size, target)

    async def read(self, path: str, start: int, end: int) -> AsyncGenerator[bytes, None]:
        target = self._resolve(path)
        if target is None:
            raise FileNotFoundError(path)
        fh = await asyncio.to_thread(target.open, "rb")
        try:
            await asyncio.to_thread(fh.seek, start)
            remaining = end - start + 1
            while remaining > 0:
                data = await asyncio.to_thread(fh.read, min(READ_SIZE, remaining))
                if not data:
                    break
                remaining -= len(data)
                yield data
        finally:
            await asyncio.to_thread(fh.close)

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        if target is None:
            return
        await asyncio.to_thread(target.unlink, missing_ok=True)
        logger.info("Removed local file %s", target)


def _file_size(target: Path) -> int | None:
    try:
        stat = target.stat()
    except FileNotFoundError:
        return None
    return stat.st_size if target.is_file() else None
