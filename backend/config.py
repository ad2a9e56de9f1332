from __future__ import annotations

"""
backend/config.py

Punto único de configuración del engine (env vars / .env).

- config_base.py   -> .env, paths, helpers defensivos, modos DEBUG/SILENT, logger file
- config_catalog.py -> upstream (OMDb), cache, record store, paginación, trending

Este módulo solo re-exporta constantes: sin lógica de negocio.
backend/logger.py lo lee vía sys.modules (sin import directo) para evitar ciclos.
"""

from backend.config_base import (  # noqa: F401
    BASE_DIR,
    DATA_DIR,
    DEBUG_MODE,
    HTTP_DEBUG,
    LOG_LEVEL,
    LOGGER_FILE_ENABLED,
    LOGGER_FILE_PATH,
    PROJECT_DIR,
    SILENT_MODE,
)
from backend.config_catalog import (  # noqa: F401
    CACHE_FLUSH_MAX_DIRTY_WRITES,
    CACHE_FLUSH_MAX_SECONDS,
    CACHE_PATH,
    CACHE_SWEEP_INTERVAL_SECONDS,
    CACHE_TTL_DEFAULT_SECONDS,
    CACHE_TTL_STORE_SECONDS,
    CACHE_TTL_UPSTREAM_SECONDS,
    CATALOG_BREAKER_FAILURE_THRESHOLD,
    CATALOG_BREAKER_OPEN_SECONDS,
    CATALOG_HTTP_MAX_CONCURRENCY,
    CATALOG_HTTP_RETRY_BACKOFF_FACTOR,
    CATALOG_HTTP_RETRY_TOTAL,
    CATALOG_HTTP_TIMEOUT_SECONDS,
    CATALOG_HTTP_USER_AGENT,
    LIST_PAGE_SIZE,
    OMDB_API_KEY,
    OMDB_BASE_URL,
    RECORD_STORE_PATH,
    SEARCH_PAGE_SIZE,
    TREND_ACCUMULATION_CAP,
    TREND_MAX_PAGES,
    TREND_MIN_RESULTS,
    TREND_PAGE_SIZE,
    TREND_TERMS,
)
