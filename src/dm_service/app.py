from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dm_service.api.middleware.correlation_id import CorrelationIdMiddleware
from dm_service.api.middleware.timing import RequestTimingMiddleware
from dm_service.api.v1.routers import files, health, messages, rooms, ws
from dm_service.application.exceptions import AppError, RangeNotSatisfiableError
from dm_service.config import settings
from dm_service.infrastructure.blob.pg_blob_store import PgBlobStore
from dm_service.infrastructure.bus.redis_pubsub import (
    RedisBroadcaster,
    RedisNotifier,
    RedisPubSubSubscriber,
)
from dm_service.infrastructure.db.session import AsyncSessionLocal
from dm_service.infrastructure.storage.local_files import LocalFileStore
from dm_service.services.hooks import SideEffects

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "bad_request": 400,
    "forbidden": 403,
    "not_found": 404,
    "range_not_satisfiable": 416,
    "internal": 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    app.state.redis = aioredis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
    )
    logger.info("Redis connection pool created")

    app.state.side_effects = SideEffects(
        RedisBroadcaster(app.state.redis, settings.REDIS_PUBSUB_CHANNEL),
        RedisNotifier(app.state.redis, settings.REDIS_NOTIFY_CHANNEL),
    )
    app.state.blob_store = PgBlobStore(AsyncSessionLocal, chunk_size=settings.BLOB_CHUNK_SIZE)
    app.state.local_files = LocalFileStore(settings.LOCAL_UPLOAD_DIR)

    subscriber = RedisPubSubSubscriber(
        app.state.redis,
        settings.REDIS_PUBSUB_CHANNEL,
        ws.get_manager().dispatch,
    )
    await subscriber.start()
    app.state.pubsub_subscriber = subscriber

    yield

    await subscriber.stop()
    await app.state.side_effects.drain()
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Direct Messaging Service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Range", "Content-Disposition", "Accept-Ranges", "Server-Timing"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(rooms.router)
    app.include_router(messages.router)
    app.include_router(files.router)
    app.include_router(ws.router)

    return app


def _error(status_code: int, code: str, detail: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": code, "detail": detail},
        headers=headers,
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(req: Request, exc: AppError) -> JSONResponse:
        status_code = STATUS_BY_CODE.get(exc.code, 500)
        headers = None
        if isinstance(exc, RangeNotSatisfiableError):
            headers = {"Content-Range": f"bytes */{exc.length}", "Accept-Ranges": "bytes"}
        if status_code >= 500:
            logger.error("%s %s failed: %s", req.method, req.url.path, exc.detail)
        return _error(status_code, exc.code, exc.detail, headers)

    @app.exception_handler(RequestValidationError)
    async def _validation(_req: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
            for err in exc.errors()
        )
        return _error(400, "bad_request", problems or "Invalid request")

    @app.exception_handler(Exception)
    async def _unexpected(req: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", req.method, req.url.path, exc_info=exc)
        return _error(500, "internal", "Internal server error")
