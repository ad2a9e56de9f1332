# exception handlers (engine errors -> status, error_id en 5xx)
from __future__ import annotations

import uuid

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from backend.errors import EngineError, InvalidUpdate, NotFound, UpstreamUnavailable
from server.api.logging_config import configure_logging
from server.api.responses import error_response
from server.api.services import metrics
from server.api.settings import Settings


def _request_id(request: Request) -> str | None:
    req_id = getattr(request.state, "request_id", None)
    return req_id if isinstance(req_id, str) and req_id else None


def build_exception_handler(settings: Settings):
    """Última red: cualquier excepción no mapeada => 500 genérico con error_id."""
    logger = configure_logging(settings)

    async def handler(request: Request, exc: Exception) -> JSONResponse:
        error_id = uuid.uuid4().hex
        req_id = _request_id(request)

        logger.exception(
            "unhandled_exception",
            extra={"error_id": error_id, "request_id": req_id, "path": request.url.path},
        )
        metrics.inc("http_errors_5xx_total", 1)

        return error_response(500, "Internal Server Error", error_id=error_id, request_id=req_id)

    return handler


def build_engine_error_handler(settings: Settings):
    """
    NotFound            -> 404
    InvalidUpdate       -> 400
    UpstreamUnavailable -> 502
    resto (InternalFailure, ...) -> 500 con error_id
    """
    logger = configure_logging(settings)

    async def handler(request: Request, exc: Exception) -> JSONResponse:
        req_id = _request_id(request)

        if isinstance(exc, NotFound):
            metrics.inc("http_errors_4xx_total", 1)
            return error_response(404, "Movie not found", request_id=req_id)

        if isinstance(exc, InvalidUpdate):
            metrics.inc("http_errors_4xx_total", 1)
            return error_response(400, str(exc), request_id=req_id)

        if isinstance(exc, UpstreamUnavailable):
            metrics.inc("upstream_unavailable_total", 1)
            logger.warning("upstream_unavailable", extra={"request_id": req_id, "path": request.url.path})
            return error_response(502, "Movie catalog is currently unavailable", request_id=req_id)

        error_id = uuid.uuid4().hex
        logger.error(
            "engine_failure",
            exc_info=exc if isinstance(exc, EngineError) else None,
            extra={"error_id": error_id, "request_id": req_id, "path": request.url.path},
        )
        metrics.inc("http_errors_5xx_total", 1)
        return error_response(500, "Internal Server Error", error_id=error_id, request_id=req_id)

    return handler


def build_http_exception_handler(settings: Settings):
    """HTTPException (validación de parámetros en routers) con el mismo envelope."""

    async def handler(request: Request, exc: Exception) -> JSONResponse:
        status_code = exc.status_code if isinstance(exc, HTTPException) else 500
        detail = exc.detail if isinstance(exc, HTTPException) else "Internal Server Error"
        if 400 <= status_code < 500:
            metrics.inc("http_errors_4xx_total", 1)
        return error_response(status_code, str(detail), request_id=_request_id(request))

    return handler
