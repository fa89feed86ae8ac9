from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncGenerator, Callable, Protocol
from uuid import UUID

RangeReader = Callable[[int, int], AsyncGenerator[bytes, None]]


@dataclass(frozen=True, slots=True)
class StoredBlob:
    blob_id: UUID
    filename: str
    content_type: str
    length: int
    sha256: str
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def original_name(self) -> str:
        return self.metadata.get("originalName") or self.filename


@dataclass(frozen=True, slots=True)
class ByteSource:
    """Something the streaming gateway can serve: a declared length plus a range reader.

    ``reader(start, end)`` yields exactly the bytes ``start..end`` inclusive.
    """

    filename: str
    content_type: str
    length: int
    reader: RangeReader
    immutable: bool = False


class BlobStore(Protocol):
    async def put(
        self,
        data: bytes,
        *,
        original_name: str,
        content_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> StoredBlob: ...

    async def get(self, blob_id: UUID) -> StoredBlob | None: ...

    async def get_by_filename(self, filename: str) -> StoredBlob | None: ...

    def read(self, blob: StoredBlob, start: int, end: int) -> AsyncGenerator[bytes, None]: ...

    async def delete(self, blob_id: UUID) -> bool:
        """Remove the blob. Returns False if it did not exist."""
        ...

    async def purge_orphans(self, older_than: datetime) -> int:
        """Delete blobs created before ``older_than`` that no attachment references."""
        ...


class LocalFiles(Protocol):
    def contains(self, path: str) -> bool: ...

    async def size(self, path: str) -> int | None: ...

    def read(self, path: str, start: int, end: int) -> AsyncGenerator[bytes, None]: ...

    async def delete(self, path: str) -> None: ...
