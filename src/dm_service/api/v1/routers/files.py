from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Header, Query
from fastapi.responses import RedirectResponse, Response

from dm_service.api.deps import AttachmentStorageDep, UoWDep
from dm_service.api.streaming import stream_source
from dm_service.api.v1.schemas.common import ERROR_RESPONSES
from dm_service.config import settings
from dm_service.services.attachment_service import Redirect, open_public_blob, open_room_attachment

router = APIRouter(tags=["files"], responses=ERROR_RESPONSES)


@router.get("/file/{blob_ref}")
async def get_file(
    blob_ref: str,
    storage: AttachmentStorageDep,
    download: bool = Query(False),
    range_header: Annotated[str | None, Header(alias="Range")] = None,
) -> Response:
    source = await open_public_blob(blob_ref, storage)
    return stream_source(
        source,
        range_header,
        download=download,
        chunk_timeout=settings.BLOB_DOWNLOAD_TIMEOUT_SECONDS,
    )


@router.get("/chat/room/{room_id}/attachment/{attachment_id}")
async def get_room_attachment(
    room_id: UUID,
    attachment_id: UUID,
    storage: AttachmentStorageDep,
    uow: UoWDep,
    user_id: str = Query(..., alias="userId"),
    download: bool = Query(False),
    range_header: Annotated[str | None, Header(alias="Range")] = None,
) -> Response:
    target = await open_room_attachment(room_id, attachment_id, user_id, uow, storage)
    if isinstance(target, Redirect):
        return RedirectResponse(target.url, status_code=302)
    return stream_source(
        target,
        range_header,
        download=download,
        chunk_timeout=settings.BLOB_DOWNLOAD_TIMEOUT_SECONDS,
    )
