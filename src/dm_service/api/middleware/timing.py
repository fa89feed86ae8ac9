"""Per-request timing: a log line plus a ``Server-Timing`` response header."""
from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

QUIET_PATHS = frozenset({"/healthz", "/readyz"})


class RequestTimingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["Server-Timing"] = f"app;dur={elapsed_ms:.1f}"
        if request.url.path in QUIET_PATHS:
            return response

        # streamed downloads: elapsed covers resolving the source, not the transfer
        served = response.headers.get("content-range") or response.headers.get("content-length")
        logger.info(
            "%s %s %s %.1fms%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            f" ({served})" if served and request.method == "GET" else "",
        )
        return response
