from __future__ import annotations

"""
server/api/middleware/request_id.py

Middleware por request:
- Inyecta/propaga X-Request-ID (request.state.request_id)
- Cuenta requests y loguea método, path, status y duración
"""

import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from server.api.logging_config import configure_logging
from server.api.services import metrics
from server.api.settings import Settings

CallNext = Callable[[Request], Awaitable[Response]]
Middleware = Callable[[Request, CallNext], Awaitable[Response]]

_MAX_REQUEST_ID_CHARS = 128


def _incoming_request_id(request: Request) -> str:
    raw = (request.headers.get("x-request-id") or "").strip()
    return raw[:_MAX_REQUEST_ID_CHARS] if raw else uuid.uuid4().hex


def build_request_id_middleware(settings: Settings) -> Middleware:
    logger = configure_logging(settings)

    async def middleware(request: Request, call_next: CallNext) -> Response:
        start = time.monotonic()
        req_id = _incoming_request_id(request)
        request.state.request_id = req_id

        metrics.inc("http_requests_total", 1)

        response: Response | None = None
        status_code = 500
        try:
            response = await call_next(request)
            status_code = int(response.status_code)
            response.headers["X-Request-ID"] = req_id
            return response
        finally:
            logger.info(
                "request",
                extra={
                    "request_id": req_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status": status_code,
                    "duration_ms": int((time.monotonic() - start) * 1000),
                },
            )

    return middleware
