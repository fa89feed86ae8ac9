from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, File, Form, UploadFile

from dm_service.api.deps import MessageServiceDep, UoWDep
from dm_service.api.v1.schemas.common import ERROR_RESPONSES
from dm_service.api.v1.schemas.message import (
    DeleteMessageRequest,
    DeleteMessageResponse,
    EditMessageRequest,
    HistoryRequest,
    HistoryResponse,
    MessageDataResponse,
    SendMessageRequest,
)
from dm_service.application.dto.message import UploadedFile
from dm_service.application.dto.views import MessageView
from dm_service.application.exceptions import BadRequestError
from dm_service.config import settings
from dm_service.services import room_service

router = APIRouter(prefix="/chat", tags=["messages"], responses=ERROR_RESPONSES)


@router.post("/history", response_model=HistoryResponse)
async def history(body: HistoryRequest, uow: UoWDep) -> HistoryResponse:
    messages = await room_service.get_messages(body.room_id, body.limit, body.before, uow)
    return HistoryResponse(messages=[MessageView.model_validate(m) for m in messages])


@router.post("/message", response_model=MessageDataResponse, status_code=201)
async def send_message(body: SendMessageRequest, service: MessageServiceDep) -> MessageDataResponse:
    message = await service.send_text_message(
        body.room_id,
        body.sender_id,
        body.text,
        reply_to=body.reply_to,
        attachments=[a.to_input() for a in body.attachments],
    )
    return MessageDataResponse(message_data=MessageView.model_validate(message))


@router.post("/send-file", response_model=MessageDataResponse, status_code=201)
async def send_file(
    service: MessageServiceDep,
    room_id: Annotated[UUID, Form(alias="roomId")],
    sender_id: Annotated[str, Form(alias="senderId")],
    text: Annotated[str | None, Form()] = None,
    reply_to: Annotated[UUID | None, Form(alias="replyTo")] = None,
    files: Annotated[list[UploadFile] | None, File()] = None,
) -> MessageDataResponse:
    uploads = await _read_uploads(files or [])
    message = await service.send_file_message(
        room_id, sender_id, text, uploads, reply_to=reply_to,
    )
    return MessageDataResponse(message_data=MessageView.model_validate(message))


@router.patch("/edit", response_model=MessageDataResponse)
async def edit_message(body: EditMessageRequest, service: MessageServiceDep) -> MessageDataResponse:
    message = await service.edit_message(
        body.room_id, body.message_id, body.sender_id, body.new_text,
    )
    return MessageDataResponse(message_data=MessageView.model_validate(message))


@router.delete("/message", response_model=DeleteMessageResponse)
async def delete_message(
    body: DeleteMessageRequest, service: MessageServiceDep,
) -> DeleteMessageResponse:
    message_id = await service.delete_message(body.room_id, body.message_id, body.sender_id)
    return DeleteMessageResponse(message_id=message_id)


async def _read_uploads(files: list[UploadFile]) -> list[UploadedFile]:
    if len(files) > settings.MAX_UPLOAD_FILES:
        raise BadRequestError(f"At most {settings.MAX_UPLOAD_FILES} files per message")
    remaining = settings.MAX_UPLOAD_BYTES
    uploads: list[UploadedFile] = []
    for f in files:
        data = await f.read(remaining + 1)
        if len(data) > remaining:
            raise BadRequestError(f"Upload exceeds {settings.MAX_UPLOAD_BYTES} bytes")
        remaining -= len(data)
        uploads.append(
            UploadedFile(
                filename=f.filename or "file",
                content_type=f.content_type or "application/octet-stream",
                data=data,
            )
        )
    return uploads
