"""Chunked blob storage in PostgreSQL (``blob_files`` + ``blob_chunks``)."""
from __future__ import annotations

import hashlib
import logging
import mimetypes
import os
import secrets
import time
import uuid
from datetime import datetime
from typing import Any, AsyncGenerator

from sqlalchemy import delete, exists, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dm_service.application.exceptions import InternalError
from dm_service.application.ports.storage import StoredBlob
from dm_service.infrastructure.db.models.attachment import AttachmentModel
from dm_service.infrastructure.db.models.blob import BlobChunkModel, BlobFileModel

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 255 * 1024
READ_BATCH = 16


def generate_filename(original_name: str, content_type: str) -> str:
    """Unique storage name: ``chat_<epoch-ms>_<hex><ext>``."""
    ext = os.path.splitext(original_name)[1].lower()
    if not ext:
        ext = mimetypes.guess_extension(content_type or "") or ""
    return f"chat_{int(time.time() * 1000)}_{secrets.token_hex(8)}{ext}"


def _to_blob(model: BlobFileModel) -> StoredBlob:
    return StoredBlob(
        blob_id=model.id,
        filename=model.filename,
        content_type=model.content_type,
        length=model.length,
        sha256=model.sha256,
        created_at=model.created_at,
        metadata=dict(model.meta or {}),
    )


class PgBlobStore:
    """Implements application.ports.storage.BlobStore.

    Every write runs in its own session and transaction, independent of the
    request's unit of work, so a cancelled upload never leaves partial rows.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self._session_factory = session_factory
        self._chunk_size = chunk_size

    async def put(
        self,
        data: bytes,
        *,
        original_name: str,
        content_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> StoredBlob:
        blob = BlobFileModel(
            id=uuid.uuid4(),
            filename=generate_filename(original_name, content_type),
            content_type=content_type,
            length=len(data),
            chunk_size=self._chunk_size,
            sha256=hashlib.sha256(data).hexdigest(),
            meta={"originalName": original_name, **(metadata or {})},
        )
        chunks = [
            {"file_id": blob.id, "n": n, "data": data[offset:offset + self._chunk_size]}
            for n, offset in enumerate(range(0, len(data), self._chunk_size))
        ]
        async with self._session_factory() as session, session.begin():
            session.add(blob)
            await session.flush()
            if chunks:
                await session.execute(insert(BlobChunkModel), chunks)
            await session.refresh(blob, ["created_at"])

        logger.info(
            "Stored blob %s (%s, %d bytes, %d chunks)",
            blob.filename, content_type, blob.length, len(chunks),
        )
        return _to_blob(blob)

    async def get(self, blob_id: uuid.UUID) -> StoredBlob | None:
        async with self._session_factory() as session:
            model = await session.get(BlobFileModel, blob_id)
            return _to_blob(model) if model else None

    async def get_by_filename(self, filename: str) -> StoredBlob | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(BlobFileModel).where(BlobFileModel.filename == filename)
            )
            model = result.scalar_one_or_none()
            return _to_blob(model) if model else None

    async def read(
        self, blob: StoredBlob, start: int, end: int,
    ) -> AsyncGenerator[bytes, None]:
        """Yield bytes ``start..end`` inclusive, a batch of chunks per query."""
        if blob.length == 0 or start > end:
            return
        async with self._session_factory() as session:
            chunk_size = await session.scalar(
                select(BlobFileModel.chunk_size).where(BlobFileModel.id == blob.blob_id)
            )
        if chunk_size is None:
            raise InternalError(f"Blob {blob.filename} disappeared while reading")

        first, last = start // chunk_size, end // chunk_size
        n = first
        while n <= last:
            upper = min(n + READ_BATCH - 1, last)
            async with self._session_factory() as session:
                result = await session.execute(
                    select(BlobChunkModel.n, BlobChunkModel.data)
                    .where(
                        BlobChunkModel.file_id == blob.blob_id,
                        BlobChunkModel.n.between(n, upper),
                    )
                    .order_by(BlobChunkModel.n)
                )
                rows = result.all()
            for chunk_n, data in rows:
                if chunk_n != n:
                    raise InternalError(f"Blob {blob.filename} is missing chunk {n}")
                offset = chunk_n * chunk_size
                lo = max(start - offset, 0)
                hi = min(end - offset + 1, len(data))
                yield bytes(data[lo:hi])
                n += 1
            if n <= upper:
                raise InternalError(f"Blob {blob.filename} is truncated at chunk {n}")

    async def delete(self, blob_id: uuid.UUID) -> bool:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(BlobFileModel).where(BlobFileModel.id == blob_id).returning(BlobFileModel.id)
            )
            removed = result.scalar_one_or_none() is not None
        if removed:
            logger.info("Deleted blob %s", blob_id)
        return removed

    async def purge_orphans(self, older_than: datetime) -> int:
        referenced = exists().where(AttachmentModel.blob_id == BlobFileModel.id)
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(BlobFileModel)
                .where(BlobFileModel.created_at < older_than, ~referenced)
                .returning(BlobFileModel.filename)
            )
            removed = result.scalars().all()
        for filename in removed:
            logger.info("Purged orphan blob %s", filename)
        return len(removed)
