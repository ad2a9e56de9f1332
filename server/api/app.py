from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend.cache_store import CacheSweeper
from backend.config import CACHE_SWEEP_INTERVAL_SECONDS
from backend.errors import EngineError
from backend.resolution_engine import ResolutionEngine, build_engine
from server.api.deps import get_settings
from server.api.logging_config import configure_logging
from server.api.middleware import (
    build_engine_error_handler,
    build_exception_handler,
    build_http_exception_handler,
    build_request_id_middleware,
)
from server.api.routers.cache import router as cache_router
from server.api.routers.health import router as health_router
from server.api.routers.movies import router as movies_router
from server.api.settings import Settings


def create_app(engine: ResolutionEngine | None = None, settings: Settings | None = None) -> FastAPI:
    """
    App FastAPI.

    - engine=None: se construye en el arranque (lifespan) con backend.config y se cierra al parar.
    - engine inyectado (tests): se usa tal cual y su ciclo de vida es del caller.
    """
    cfg = settings or get_settings()
    log = configure_logging(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = engine is None
        app.state.engine = build_engine() if owned else engine

        sweeper: CacheSweeper | None = None
        if cfg.sweeper_enabled:
            sweeper = CacheSweeper(app.state.engine.cache, interval_seconds=CACHE_SWEEP_INTERVAL_SECONDS)
            sweeper.start()
        log.info("engine ready", extra={"owned": owned, "sweeper": sweeper is not None})

        try:
            yield
        finally:
            if sweeper is not None:
                sweeper.stop()
            if owned:
                app.state.engine.close()

    app = FastAPI(title="Movies Catalog Engine API", version="1.0.0", lifespan=lifespan)
    if engine is not None:
        app.state.engine = engine

    app.add_middleware(GZipMiddleware, minimum_size=max(0, cfg.gzip_min_size))
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allow_origins(),
        allow_credentials=cfg.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(build_request_id_middleware(cfg))
    app.add_exception_handler(EngineError, build_engine_error_handler(cfg))
    app.add_exception_handler(StarletteHTTPException, build_http_exception_handler(cfg))
    app.add_exception_handler(Exception, build_exception_handler(cfg))

    app.include_router(health_router)
    app.include_router(movies_router)
    app.include_router(cache_router)

    return app


app = create_app()
