from __future__ import annotations

"""
backend/catalog_client.py

Cliente del catálogo upstream (OMDb) con la forma mínima que necesita el engine.

API
---
- find_by_id(id)          -> Movie                 (i=<id>&plot=full)
- search(term, page, year) -> CatalogSearchPage     (s=<term>&page=<n>&type=movie[&y=])
- find_many_by_id(ids)    -> list[LookupOutcome]   (fan-out acotado, orden preservado)

Errores
-------
- NotFound:      el upstream responde Response="False" para un id (no hay match).
- UpstreamError: transporte, timeout, HTTP != 200, JSON inválido/no-objeto,
                 API key ausente/inválida, límite de peticiones, breaker abierto.

"Sin resultados" en search NO es error: se devuelve una página vacía.

Red
---
- requests.Session propia (pooling) + urllib3 Retry (total=CATALOG_HTTP_RETRY_TOTAL, 0 por defecto).
- Semaphore para limitar concurrencia HTTP real.
- Timeout independiente por llamada: un timeout solo afecta a esa sub-llamada.
- CircuitBreaker por endpoint ("search" / "detail").
- SingleFlight en find_by_id: llamadas concurrentes por el mismo id => 1 request.
"""

import json
import threading
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Final

import requests  # type: ignore[import-untyped]
from requests.adapters import HTTPAdapter  # type: ignore[import-untyped]
from requests.exceptions import RequestException  # type: ignore[import-untyped]
from urllib3.util.retry import Retry

from backend import logger as logger
from backend.config import (
    CATALOG_BREAKER_FAILURE_THRESHOLD,
    CATALOG_BREAKER_OPEN_SECONDS,
    CATALOG_HTTP_MAX_CONCURRENCY,
    CATALOG_HTTP_RETRY_BACKOFF_FACTOR,
    CATALOG_HTTP_RETRY_TOTAL,
    CATALOG_HTTP_TIMEOUT_SECONDS,
    CATALOG_HTTP_USER_AGENT,
    OMDB_API_KEY,
    OMDB_BASE_URL,
)
from backend.errors import NotFound, UpstreamError
from backend.models import Movie
from backend.normalizer import FlatCatalogPayload, extract_external_id, normalize, sanitize_search_query
from backend.resilience import CircuitBreaker, CircuitOpenError, SingleFlight

_ERR_INVALID_KEY: Final[str] = "Invalid API key!"
_ERR_RATE_LIMIT: Final[str] = "Request limit reached!"

_ENDPOINT_SEARCH: Final[str] = "search"
_ENDPOINT_DETAIL: Final[str] = "detail"

# Tamaño fijo de página de búsqueda del catálogo (s=...&page=N).
CATALOG_PAGE_ITEMS: Final[int] = 10


def _dbg(msg: object) -> None:
    logger.debug_ctx("CATALOG", msg)


@dataclass(frozen=True, slots=True)
class CatalogSearchPage:
    movies: list[dict[str, object]] = field(default_factory=list)
    total_results: int = 0
    page: int = 1

    @property
    def ids(self) -> list[str]:
        out: list[str] = []
        for summary in self.movies:
            ext = extract_external_id(summary)
            if ext and ext not in out:
                out.append(ext)
        return out


@dataclass(frozen=True, slots=True)
class LookupOutcome:
    """Resultado independiente de una sub-llamada del fan-out."""

    external_id: str
    ok: bool
    value: Movie | None = None
    error: Exception | None = None


def build_session(*, max_concurrency: int, retry_total: int, backoff_factor: float, user_agent: str) -> requests.Session:
    """
    requests.Session con pool alineado a la concurrencia.
    Retry solo para 429/5xx y solo si retry_total > 0.
    """
    pool_size = max(1, min(64, int(max_concurrency)))
    session = requests.Session()

    retries = Retry(
        total=max(0, int(retry_total)),
        backoff_factor=max(0.0, float(backoff_factor)),
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET",),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retries, pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update(
        {
            "User-Agent": user_agent.strip() or "movies-catalog-engine/1.0",
            "Accept": "application/json,text/plain,*/*",
        }
    )
    return session


def _total_results(value: object) -> int:
    try:
        return max(0, int(str(value).replace(",", "").strip()))
    except (TypeError, ValueError):
        return 0


class CatalogClient:
    def __init__(
        self,
        *,
        api_key: str | None = OMDB_API_KEY,
        base_url: str = OMDB_BASE_URL,
        timeout_seconds: float = CATALOG_HTTP_TIMEOUT_SECONDS,
        max_concurrency: int = CATALOG_HTTP_MAX_CONCURRENCY,
        session: requests.Session | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self._api_key = (api_key or "").strip() or None
        self._base_url = base_url.strip() or "https://www.omdbapi.com/"
        self._timeout = max(0.5, float(timeout_seconds))
        self._max_concurrency = max(1, int(max_concurrency))

        self._session = session or build_session(
            max_concurrency=self._max_concurrency,
            retry_total=CATALOG_HTTP_RETRY_TOTAL,
            backoff_factor=CATALOG_HTTP_RETRY_BACKOFF_FACTOR,
            user_agent=CATALOG_HTTP_USER_AGENT,
        )
        self._semaphore = threading.BoundedSemaphore(self._max_concurrency)
        self._breaker = breaker or CircuitBreaker(
            failure_threshold=CATALOG_BREAKER_FAILURE_THRESHOLD,
            open_seconds=CATALOG_BREAKER_OPEN_SECONDS,
        )
        self._flights: SingleFlight[Movie] = SingleFlight()

        self._metrics_lock = threading.Lock()
        self._metrics: dict[str, int] = {
            "http_requests": 0,
            "http_failures": 0,
            "not_found": 0,
            "empty_searches": 0,
            "circuit_rejections": 0,
            "rate_limit_hits": 0,
            "fanout_items": 0,
            "fanout_failures": 0,
        }
        self._missing_key_notice_shown = False

    # ------------------------------------------------------------------
    # métricas
    # ------------------------------------------------------------------

    def _m_inc(self, key: str, delta: int = 1) -> None:
        with self._metrics_lock:
            self._metrics[key] = self._metrics.get(key, 0) + int(delta)

    def get_metrics_snapshot(self) -> dict[str, int]:
        with self._metrics_lock:
            snap = dict(self._metrics)
        snap["coalesced_lookups"] = self._flights.coalesced_calls
        return snap

    def breaker_states(self) -> dict[str, str]:
        return self._breaker.snapshot()

    def close(self) -> None:
        self._session.close()

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _request(self, params: Mapping[str, str]) -> dict[str, object]:
        """
        GET al upstream. Devuelve el objeto JSON tal cual (incluido Response="False").
        Cualquier fallo de transporte/protocolo => UpstreamError.
        """
        if self._api_key is None:
            if not self._missing_key_notice_shown:
                logger.warning("[CATALOG] OMDB_API_KEY not configured; upstream calls will fail", always=True)
                self._missing_key_notice_shown = True
            raise UpstreamError("catalog API key not configured")

        req_params = dict(params)
        req_params["apikey"] = self._api_key

        with self._semaphore:
            self._m_inc("http_requests", 1)
            try:
                resp = self._session.get(self._base_url, params=req_params, timeout=self._timeout)
            except RequestException as exc:
                self._m_inc("http_failures", 1)
                _dbg(f"transport error: {exc!r}")
                raise UpstreamError(f"catalog transport error: {exc.__class__.__name__}") from exc

        if resp.status_code != 200:
            self._m_inc("http_failures", 1)
            _dbg(f"status != 200: {resp.status_code}")
            raise UpstreamError(f"catalog returned HTTP {resp.status_code}", status_code=resp.status_code)

        try:
            data = resp.json()
        except (ValueError, json.JSONDecodeError) as exc:
            self._m_inc("http_failures", 1)
            _dbg(f"invalid JSON: {logger.truncate_line(str(getattr(resp, 'text', '')))}")
            raise UpstreamError("catalog returned invalid JSON") from exc

        if not isinstance(data, dict):
            self._m_inc("http_failures", 1)
            raise UpstreamError("catalog returned a non-object JSON payload")

        err = data.get("Error")
        if err == _ERR_INVALID_KEY:
            logger.warning("[CATALOG] upstream rejected the API key", always=True)
            raise UpstreamError("catalog rejected the API key", status_code=401)
        if err == _ERR_RATE_LIMIT:
            self._m_inc("rate_limit_hits", 1)
            raise UpstreamError("catalog request limit reached", status_code=429)

        return data

    def _guarded(self, endpoint: str, params: Mapping[str, str]) -> dict[str, object]:
        try:
            return self._breaker.call(
                endpoint,
                lambda: self._request(params),
                is_failure=lambda exc: isinstance(exc, UpstreamError),
            )
        except CircuitOpenError as exc:
            self._m_inc("circuit_rejections", 1)
            state = self._breaker.debug_state(endpoint)
            last_error = state.last_error if state is not None else ""
            _dbg(f"circuit open endpoint={endpoint} last_error={last_error!r}")
            raise UpstreamError(str(exc)) from exc

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------

    def _fetch_by_id(self, external_id: str) -> Movie:
        data = self._guarded(_ENDPOINT_DETAIL, {"i": external_id, "plot": "full"})
        if data.get("Response") == "False":
            self._m_inc("not_found", 1)
            raise NotFound(external_id)
        movie = normalize(FlatCatalogPayload(raw=data))
        if not movie.external_id:
            movie.external_id = external_id
        return movie

    def find_by_id(self, external_id: str) -> Movie:
        ext = (external_id or "").strip()
        if not ext:
            raise NotFound(external_id)
        return self._flights.do(ext, lambda: self._fetch_by_id(ext))

    def search(self, term: str, page: int = 1, year: int | None = None) -> CatalogSearchPage:
        query = sanitize_search_query(term)
        page_n = max(1, int(page))
        if not query:
            return CatalogSearchPage(movies=[], total_results=0, page=page_n)

        params = {"s": query, "page": str(page_n), "type": "movie"}
        if year is not None:
            params["y"] = str(year)

        data = self._guarded(_ENDPOINT_SEARCH, params)
        if data.get("Response") == "False":
            self._m_inc("empty_searches", 1)
            _dbg(f"no results for s={query!r} page={page_n} y={year}")
            return CatalogSearchPage(movies=[], total_results=0, page=page_n)

        items = data.get("Search")
        movies = [dict(m) for m in items if isinstance(m, Mapping)] if isinstance(items, list) else []
        return CatalogSearchPage(movies=movies, total_results=_total_results(data.get("totalResults")), page=page_n)

    def _lookup(self, external_id: str) -> LookupOutcome:
        try:
            return LookupOutcome(external_id=external_id, ok=True, value=self.find_by_id(external_id))
        except (NotFound, UpstreamError) as exc:
            self._m_inc("fanout_failures", 1)
            _dbg(f"lookup failed for {external_id}: {exc!r}")
            return LookupOutcome(external_id=external_id, ok=False, error=exc)

    def find_many_by_id(self, ids: Sequence[str]) -> list[LookupOutcome]:
        """
        Fan-out acotado. Cada sub-llamada se resuelve de forma independiente;
        len(salida) == len(ids) y el orden coincide con el de entrada.
        """
        if not ids:
            return []
        self._m_inc("fanout_items", len(ids))

        workers = min(self._max_concurrency, len(ids))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="catalog-lookup") as pool:
            return list(pool.map(self._lookup, ids))
