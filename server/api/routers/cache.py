from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from backend.resolution_engine import ResolutionEngine
from server.api.deps import get_engine
from server.api.responses import envelope

router = APIRouter(prefix="/cache")


@router.get("/stats")
def cache_stats(engine: ResolutionEngine = Depends(get_engine)) -> dict[str, Any]:
    return envelope(engine.cache.stats(), "Cache statistics retrieved successfully")


@router.post("/sweep")
def cache_sweep(engine: ResolutionEngine = Depends(get_engine)) -> dict[str, Any]:
    removed = engine.cache.sweep()
    return envelope({"removed": removed}, "Expired cache entries removed")
