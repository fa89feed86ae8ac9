from __future__ import annotations

import asyncio
from typing import AsyncGenerator

import pytest

from dm_service.api.streaming import (
    content_disposition,
    guarded_body,
    is_inline,
    parse_range,
    stream_source,
)
from dm_service.application.exceptions import RangeNotSatisfiableError
from dm_service.application.ports.storage import ByteSource


@pytest.mark.parametrize(
    "header, expected",
    [
        (None, None),
        ("", None),
        ("bytes=0-0", (0, 0)),
        ("bytes=0-499", (0, 499)),
        ("bytes=500-", (500, 999)),
        ("bytes=-200", (800, 999)),
        ("bytes=-5000", (0, 999)),
        ("bytes=900-5000", (900, 999)),
        ("bytes = 10-20", (10, 20)),
    ],
)
def test_parse_range(header, expected):
    assert parse_range(header, 1000) == expected


@pytest.mark.parametrize(
    "header",
    ["bytes=2000-3000", "bytes=1000-", "bytes=5-3", "bytes=0-1,5-6", "items=0-1", "bytes=-", "bytes=-0"],
)
def test_parse_range_unsatisfiable(header):
    with pytest.raises(RangeNotSatisfiableError) as info:
        parse_range(header, 1000)
    assert info.value.length == 1000


def test_inline_disposition_rules():
    assert is_inline("image/png") is True
    assert is_inline("application/pdf") is True
    assert is_inline("IMAGE/JPEG") is True
    assert is_inline("text/plain") is False
    assert is_inline("image/png", download=True) is False


def test_content_disposition_encodes_non_ascii():
    value = content_disposition('отчёт "final".pdf', inline=False)

    assert value.startswith('attachment; filename="')
    assert "filename*=UTF-8''%D0%BE%D1%82%D1%87%D1%91%D1%82%20%22final%22.pdf" in value
    fallback = value.split('filename="')[1].split('"')[0]
    assert fallback.isascii()
    assert fallback.endswith(".pdf")


def test_content_disposition_inline_ascii():
    assert content_disposition("cat.png", inline=True) == (
        "inline; filename=\"cat.png\"; filename*=UTF-8''cat.png"
    )


def _source(data: bytes, *, immutable: bool = False, fail_after: int | None = None) -> ByteSource:
    async def reader(start: int, end: int) -> AsyncGenerator[bytes, None]:
        sent = 0
        for offset in range(start, end + 1, 3):
            if fail_after is not None and sent >= fail_after:
                raise OSError("disk went away")
            sent += 1
            yield data[offset:min(offset + 3, end + 1)]

    return ByteSource(
        filename="data.bin",
        content_type="application/octet-stream",
        length=len(data),
        reader=reader,
        immutable=immutable,
    )


@pytest.mark.asyncio
async def test_guarded_body_yields_exact_slice():
    data = bytes(range(20))
    body = b"".join([c async for c in guarded_body(_source(data), 4, 12)])
    assert body == data[4:13]


@pytest.mark.asyncio
async def test_guarded_body_logs_and_stops_on_error(caplog):
    chunks = [c async for c in guarded_body(_source(b"x" * 30, fail_after=2), 0, 29)]

    assert chunks == [b"xxx", b"xxx"]
    assert "Streaming data.bin failed" in caplog.text


@pytest.mark.asyncio
async def test_guarded_body_chunk_timeout(caplog):
    async def stalled(start: int, end: int) -> AsyncGenerator[bytes, None]:
        yield b"a"
        await asyncio.sleep(1)
        yield b"b"

    source = ByteSource("slow.bin", "application/octet-stream", 2, stalled)
    chunks = [c async for c in guarded_body(source, 0, 1, chunk_timeout=0.05)]

    assert chunks == [b"a"]
    assert "Streaming slow.bin failed" in caplog.text


def test_stream_source_full_response_headers():
    response = stream_source(_source(b"hello", immutable=True), None)

    assert response.status_code == 200
    assert response.headers["content-length"] == "5"
    assert response.headers["accept-ranges"] == "bytes"
    assert response.headers["x-content-type-options"] == "nosniff"
    assert response.headers["cache-control"] == "public, max-age=31536000, immutable"
    assert response.headers["content-disposition"].startswith("attachment;")


def test_stream_source_partial_response_headers():
    response = stream_source(_source(b"x" * 1000), "bytes=0-0", download=True)

    assert response.status_code == 206
    assert response.headers["content-range"] == "bytes 0-0/1000"
    assert response.headers["content-length"] == "1"
    assert "cache-control" not in response.headers
