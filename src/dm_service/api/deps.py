"""FastAPI dependency injection helpers."""
from __future__ import annotations

from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Annotated, AsyncIterator, Callable

from fastapi import Depends
from starlette.requests import HTTPConnection

from dm_service.application.ports.storage import BlobStore, LocalFiles
from dm_service.application.uow import UnitOfWork
from dm_service.config import settings
from dm_service.infrastructure.db.session import AsyncSessionLocal
from dm_service.infrastructure.db.uow import SqlAlchemyUoW
from dm_service.services.attachment_service import AttachmentStorage
from dm_service.services.hooks import SideEffects
from dm_service.services.message_service import MessageService
from dm_service.services.seen_tracker import SeenTracker

UoWFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]


@asynccontextmanager
async def session_uow() -> AsyncIterator[SqlAlchemyUoW]:
    async with AsyncSessionLocal() as session:
        yield SqlAlchemyUoW(session)


def get_uow_factory() -> UoWFactory:
    """Short-lived units of work for long-running connections (WebSocket, readiness checks)."""
    return session_uow


async def get_uow() -> AsyncIterator[SqlAlchemyUoW]:
    async with session_uow() as uow:
        yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]
UoWFactoryDep = Annotated[UoWFactory, Depends(get_uow_factory)]


def get_side_effects(conn: HTTPConnection) -> SideEffects:
    return conn.app.state.side_effects


def get_blob_store(conn: HTTPConnection) -> BlobStore:
    return conn.app.state.blob_store


def get_local_files(conn: HTTPConnection) -> LocalFiles:
    return conn.app.state.local_files


SideEffectsDep = Annotated[SideEffects, Depends(get_side_effects)]


def get_attachment_storage(
    blobs: Annotated[BlobStore, Depends(get_blob_store)],
    files: Annotated[LocalFiles, Depends(get_local_files)],
) -> AttachmentStorage:
    return AttachmentStorage(blobs, files)


AttachmentStorageDep = Annotated[AttachmentStorage, Depends(get_attachment_storage)]


def get_message_service(
    uow: UoWDep,
    storage: AttachmentStorageDep,
    side_effects: SideEffectsDep,
) -> MessageService:
    return MessageService(
        uow,
        storage,
        side_effects,
        upload_timeout=settings.BLOB_UPLOAD_TIMEOUT_SECONDS,
        max_files=settings.MAX_UPLOAD_FILES,
        file_url_prefix=settings.file_url_prefix,
    )


def get_seen_tracker(uow: UoWDep, side_effects: SideEffectsDep) -> SeenTracker:
    return SeenTracker(uow, side_effects)


MessageServiceDep = Annotated[MessageService, Depends(get_message_service)]
SeenTrackerDep = Annotated[SeenTracker, Depends(get_seen_tracker)]
