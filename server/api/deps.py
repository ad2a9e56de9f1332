from __future__ import annotations

from fastapi import Request

from backend.resolution_engine import ResolutionEngine
from server.api.settings import Settings

_SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return _SETTINGS


def get_engine(request: Request) -> ResolutionEngine:
    """Engine construido en el lifespan de la app (o inyectado en create_app)."""
    return request.app.state.engine
