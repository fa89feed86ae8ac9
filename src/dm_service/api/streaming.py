"""HTTP byte-range serving of attachments."""
from __future__ import annotations

import asyncio
import logging
import re
from typing import AsyncIterator
from urllib.parse import quote

from fastapi.responses import StreamingResponse

from dm_service.application.exceptions import RangeNotSatisfiableError
from dm_service.application.ports.storage import ByteSource

logger = logging.getLogger(__name__)

_RANGE_RE = re.compile(r"^bytes=(\d*)-(\d*)$")
_UNSAFE_ASCII = re.compile(r'[^\x20-\x7e]|["\\]')

IMMUTABLE_CACHE = "public, max-age=31536000, immutable"


def parse_range(header: str | None, length: int) -> tuple[int, int] | None:
    """Parse a single ``bytes=`` range against a resource of ``length`` bytes.

    Returns inclusive ``(start, end)``, or None when no range was requested.
    Raises RangeNotSatisfiableError for anything that cannot be served as one slice.
    """
    if header is None or not header.strip():
        return None
    value = header.replace(" ", "")
    if "," in value:
        raise RangeNotSatisfiableError(length, "Multiple ranges are not supported")
    match = _RANGE_RE.match(value)
    if match is None:
        raise RangeNotSatisfiableError(length, f"Malformed range: {header}")
    start_raw, end_raw = match.groups()
    if not start_raw and not end_raw:
        raise RangeNotSatisfiableError(length, f"Malformed range: {header}")

    if not start_raw:
        suffix = int(end_raw)
        if suffix == 0 or length == 0:
            raise RangeNotSatisfiableError(length)
        return max(length - suffix, 0), length - 1

    start = int(start_raw)
    end = int(end_raw) if end_raw else length - 1
    if start >= length or start > end:
        raise RangeNotSatisfiableError(length)
    return start, min(end, length - 1)


def is_inline(content_type: str, *, download: bool = False) -> bool:
    if download:
        return False
    content_type = content_type.lower()
    return content_type.startswith("image/") or content_type == "application/pdf"


def content_disposition(filename: str, *, inline: bool) -> str:
    """``inline``/``attachment`` with an ASCII fallback and an RFC 5987 UTF-8 name."""
    fallback = _UNSAFE_ASCII.sub("_", filename).strip() or "download"
    encoded = quote(filename, safe="")
    kind = "inline" if inline else "attachment"
    return f"{kind}; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"


async def guarded_body(
    source: ByteSource,
    start: int,
    end: int,
    *,
    chunk_timeout: float | None = None,
) -> AsyncIterator[bytes]:
    """Relay ``source`` bytes; errors after the headers went out end the body and are logged."""
    chunks = source.reader(start, end)
    try:
        while True:
            try:
                async with asyncio.timeout(chunk_timeout):
                    chunk = await anext(chunks)
            except StopAsyncIteration:
                break
            yield chunk
    except asyncio.CancelledError:
        logger.debug("Client aborted download of %s", source.filename)
        raise
    except Exception:
        logger.exception("Streaming %s failed at bytes %d-%d", source.filename, start, end)
    finally:
        await chunks.aclose()


def stream_source(
    source: ByteSource,
    range_header: str | None,
    *,
    download: bool = False,
    chunk_timeout: float | None = None,
) -> StreamingResponse:
    length = source.length
    byte_range = parse_range(range_header, length)

    headers = {
        "Accept-Ranges": "bytes",
        "Content-Disposition": content_disposition(
            source.filename, inline=is_inline(source.content_type, download=download),
        ),
        "X-Content-Type-Options": "nosniff",
    }
    if source.immutable:
        headers["Cache-Control"] = IMMUTABLE_CACHE

    if byte_range is None:
        status_code = 200
        start, end = 0, length - 1
        headers["Content-Length"] = str(length)
    else:
        status_code = 206
        start, end = byte_range
        headers["Content-Range"] = f"bytes {start}-{end}/{length}"
        headers["Content-Length"] = str(end - start + 1)

    body = guarded_body(source, start, end, chunk_timeout=chunk_timeout) if length else iter(())
    return StreamingResponse(
        body,
        status_code=status_code,
        media_type=source.content_type,
        headers=headers,
    )
