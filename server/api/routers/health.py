from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Response

from backend.resolution_engine import ResolutionEngine
from server.api.deps import get_engine
from server.api.services import metrics

router = APIRouter()


@router.get("/health")
def health(engine: ResolutionEngine = Depends(get_engine)) -> dict[str, Any]:
    return {
        "ok": True,
        "ts": datetime.now(timezone.utc).isoformat(),
        "catalog_breakers": engine.client.breaker_states(),
    }


@router.get("/metrics")
def metrics_endpoint(engine: ResolutionEngine = Depends(get_engine)) -> Response:
    body = metrics.render_prometheus(
        {
            "catalog": engine.client.get_metrics_snapshot(),
            "query_cache": engine.cache.metrics_snapshot(),
        }
    )
    return Response(content=body, media_type="text/plain; version=0.0.4")
