from __future__ import annotations

from pathlib import Path
from typing import Final

from backend.config_base import (
    DATA_DIR,
    _cap_float_min,
    _cap_int,
    _get_env_csv_tokens,
    _get_env_float,
    _get_env_int,
    _get_env_str,
)

# ============================================================
# Catálogo upstream (OMDb): API + HTTP tuning
# ============================================================

OMDB_API_KEY: str | None = _get_env_str("OMDB_API_KEY", None)
OMDB_BASE_URL: str = _get_env_str("OMDB_BASE_URL", "https://www.omdbapi.com/") or "https://www.omdbapi.com/"

CATALOG_HTTP_TIMEOUT_SECONDS: float = _cap_float_min(
    "CATALOG_HTTP_TIMEOUT_SECONDS",
    _get_env_float("CATALOG_HTTP_TIMEOUT_SECONDS", 15.0),
    min_v=0.5,
)

CATALOG_HTTP_MAX_CONCURRENCY: int = _cap_int(
    "CATALOG_HTTP_MAX_CONCURRENCY",
    _get_env_int("CATALOG_HTTP_MAX_CONCURRENCY", 8),
    min_v=1,
    max_v=64,
)

# 0 => sin reintentos implícitos (un fallo se reporta, no se repite)
CATALOG_HTTP_RETRY_TOTAL: int = _cap_int(
    "CATALOG_HTTP_RETRY_TOTAL",
    _get_env_int("CATALOG_HTTP_RETRY_TOTAL", 0),
    min_v=0,
    max_v=10,
)
CATALOG_HTTP_RETRY_BACKOFF_FACTOR: float = _cap_float_min(
    "CATALOG_HTTP_RETRY_BACKOFF_FACTOR",
    _get_env_float("CATALOG_HTTP_RETRY_BACKOFF_FACTOR", 0.5),
    min_v=0.0,
)

CATALOG_HTTP_USER_AGENT: str = (
    _get_env_str("CATALOG_HTTP_USER_AGENT", "movies-catalog-engine/1.0") or "movies-catalog-engine/1.0"
)

CATALOG_BREAKER_FAILURE_THRESHOLD: int = _cap_int(
    "CATALOG_BREAKER_FAILURE_THRESHOLD",
    _get_env_int("CATALOG_BREAKER_FAILURE_THRESHOLD", 5),
    min_v=1,
    max_v=1_000,
)
CATALOG_BREAKER_OPEN_SECONDS: float = _cap_float_min(
    "CATALOG_BREAKER_OPEN_SECONDS",
    _get_env_float("CATALOG_BREAKER_OPEN_SECONDS", 20.0),
    min_v=0.1,
)

# ============================================================
# Cache persistente (fingerprint -> payload + expires_at)
# ============================================================

CACHE_PATH: Final[Path] = Path(_get_env_str("CACHE_PATH", str(DATA_DIR / "query_cache.json")) or "")

CACHE_TTL_DEFAULT_SECONDS: int = _cap_int(
    "CACHE_TTL_DEFAULT_SECONDS",
    _get_env_int("CACHE_TTL_DEFAULT_SECONDS", 60 * 60 * 24),
    min_v=1,
    max_v=60 * 60 * 24 * 365,
)
# Resultados servidos por el record store: TTL corto
CACHE_TTL_STORE_SECONDS: int = _cap_int(
    "CACHE_TTL_STORE_SECONDS",
    _get_env_int("CACHE_TTL_STORE_SECONDS", 60 * 60),
    min_v=1,
    max_v=60 * 60 * 24 * 30,
)
# Resultados que han requerido upstream: TTL más largo que el del store
CACHE_TTL_UPSTREAM_SECONDS: int = _cap_int(
    "CACHE_TTL_UPSTREAM_SECONDS",
    _get_env_int("CACHE_TTL_UPSTREAM_SECONDS", 2 * 60 * 60),
    min_v=1,
    max_v=60 * 60 * 24 * 30,
)

CACHE_FLUSH_MAX_DIRTY_WRITES: int = _cap_int(
    "CACHE_FLUSH_MAX_DIRTY_WRITES",
    _get_env_int("CACHE_FLUSH_MAX_DIRTY_WRITES", 25),
    min_v=1,
    max_v=10_000,
)
CACHE_FLUSH_MAX_SECONDS: float = _cap_float_min(
    "CACHE_FLUSH_MAX_SECONDS",
    _get_env_float("CACHE_FLUSH_MAX_SECONDS", 8.0),
    min_v=0.1,
)
CACHE_SWEEP_INTERVAL_SECONDS: float = _cap_float_min(
    "CACHE_SWEEP_INTERVAL_SECONDS",
    _get_env_float("CACHE_SWEEP_INTERVAL_SECONDS", 60.0 * 60.0),
    min_v=1.0,
)

# ============================================================
# Record store + paginación
# ============================================================

RECORD_STORE_PATH: Final[Path] = Path(
    _get_env_str("RECORD_STORE_PATH", str(DATA_DIR / "movies.json")) or ""
)

SEARCH_PAGE_SIZE: int = _cap_int(
    "SEARCH_PAGE_SIZE",
    _get_env_int("SEARCH_PAGE_SIZE", 10),
    min_v=1,
    max_v=100,
)
LIST_PAGE_SIZE: int = _cap_int(
    "LIST_PAGE_SIZE",
    _get_env_int("LIST_PAGE_SIZE", 20),
    min_v=1,
    max_v=200,
)

# ============================================================
# Trending (emulado con búsquedas amplias)
# ============================================================

# Términos >= 3 caracteres (mínimo que acepta OMDb para s=)
TREND_TERMS: tuple[str, ...] = tuple(
    t
    for t in _get_env_csv_tokens("TREND_TERMS", ("the", "new", "love", "war", "day", "night"))
    if len(t) >= 3
) or ("the", "new", "love", "war", "day", "night")

TREND_MAX_PAGES: int = _cap_int(
    "TREND_MAX_PAGES",
    _get_env_int("TREND_MAX_PAGES", 3),
    min_v=1,
    max_v=10,
)
TREND_ACCUMULATION_CAP: int = _cap_int(
    "TREND_ACCUMULATION_CAP",
    _get_env_int("TREND_ACCUMULATION_CAP", 40),
    min_v=1,
    max_v=500,
)
TREND_MIN_RESULTS: int = _cap_int(
    "TREND_MIN_RESULTS",
    _get_env_int("TREND_MIN_RESULTS", 10),
    min_v=0,
    max_v=500,
)
TREND_PAGE_SIZE: int = _cap_int(
    "TREND_PAGE_SIZE",
    _get_env_int("TREND_PAGE_SIZE", 20),
    min_v=1,
    max_v=200,
)
