from __future__ import annotations

"""
Envelope común de respuestas: {success, message, data, timestamp}.
"""

from datetime import datetime, timezone
from typing import Any

from fastapi.responses import JSONResponse


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def envelope(data: object = None, message: str = "Success", *, success: bool = True) -> dict[str, Any]:
    return {"success": success, "message": message, "data": data, "timestamp": _now_iso()}


def error_response(status_code: int, message: str, **extra: object) -> JSONResponse:
    payload = envelope(None, message, success=False)
    payload.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(status_code=status_code, content=payload)
