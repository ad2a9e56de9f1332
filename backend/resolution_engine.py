from __future__ import annotations

"""
backend/resolution_engine.py

Orquestación cache -> record store -> catálogo upstream.

Operaciones
-----------
- resolve_by_id(id)       -> ResolvedMovie (source: store | upstream | upstream-unsaved)
- resolve_search(q, ...)  -> SearchResult  (source: cache | store | upstream)
- resolve_trending()      -> SearchResult  (source: cache | upstream)
- list_movies(...)        -> SearchResult  (source: store)
- update_movie(id, fields) -> Movie         (edición parcial de campos de contenido)
- delete_movie(id)        -> None

Política de errores
-------------------
- Cache: best-effort en lectura y escritura; nunca falla una petición.
- Persistencia tras resolver en upstream: best-effort (PersistenceDegraded se loguea).
- Upstream (petición de un solo item): UpstreamUnavailable.
- Fan-out: cada sub-llamada falla de forma independiente; solo se devuelven los éxitos.
- Lectura inesperadamente fallida del store: InternalFailure.
- Update que deja el record inválido: InvalidUpdate.

Los campos operacionales (search_count, last_searched_at, created_at, last_updated_at) solo los
escriben este módulo y el record store.
"""

import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from backend import logger as logger
from backend.cache_store import CacheStore, fingerprint
from backend.catalog_client import CatalogClient
from backend.config import (
    CACHE_FLUSH_MAX_DIRTY_WRITES,
    CACHE_FLUSH_MAX_SECONDS,
    CACHE_PATH,
    CACHE_TTL_DEFAULT_SECONDS,
    CACHE_TTL_STORE_SECONDS,
    CACHE_TTL_UPSTREAM_SECONDS,
    LIST_PAGE_SIZE,
    RECORD_STORE_PATH,
    SEARCH_PAGE_SIZE,
)
from backend.errors import (
    InternalFailure,
    InvalidRecord,
    InvalidUpdate,
    NotFound,
    PersistenceDegraded,
    RecordStoreError,
    UpstreamError,
    UpstreamUnavailable,
)
from backend.models import Movie, ResolvedMovie, SearchResult
from backend.normalizer import sanitize_search_query
from backend.record_store import (
    UPDATABLE_FIELDS,
    JsonRecordStore,
    RecordStore,
    StoreQuery,
    build_store_query,
    normalize_sort,
)
from backend.trending import TrendApproximator

KIND_SEARCH = "movie_search"
KIND_TRENDING = "movie_trending"


def _dbg(msg: object) -> None:
    logger.debug_ctx("ENGINE", msg)


def _total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total > 0 else 0


def _persistable(movie: Movie) -> Movie:
    # Idioma compuesto ("English, Spanish"): el store no lo indexa, se persiste sin idioma.
    if "," in movie.language:
        return replace(movie, language="")
    return movie


@dataclass(frozen=True, slots=True)
class EngineTuning:
    search_page_size: int = SEARCH_PAGE_SIZE
    list_page_size: int = LIST_PAGE_SIZE
    store_ttl_seconds: float = CACHE_TTL_STORE_SECONDS
    upstream_ttl_seconds: float = CACHE_TTL_UPSTREAM_SECONDS


class ResolutionEngine:
    def __init__(
        self,
        *,
        cache: CacheStore,
        store: RecordStore,
        client: CatalogClient,
        trend: TrendApproximator,
        tuning: EngineTuning | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.store = store
        self.client = client
        self.trend = trend
        self._tuning = tuning or EngineTuning()
        self._clock = clock

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _cached_result(self, fp: str) -> SearchResult | None:
        payload = self.cache.get(fp)
        if not isinstance(payload, Mapping):
            return None
        return SearchResult.from_dict(payload, source="cache")

    def _remember(self, fp: str, result: SearchResult, ttl_seconds: float) -> None:
        if not self.cache.set(fp, result.to_dict(), ttl_seconds):
            logger.warning(f"[ENGINE] result not cached ({fp})")

    def _read_store(self, query: StoreQuery, sort: str, skip: int, limit: int) -> tuple[list[Movie], int]:
        try:
            return self.store.find_many(query, sort, skip, limit), self.store.count(query)
        except Exception as exc:
            logger.error(f"[ENGINE] record store query failed: {exc!r}")
            raise InternalFailure("record store query failed") from exc

    def _upstream_details(self, ids: list[str]) -> list[Movie]:
        outcomes = self.client.find_many_by_id(ids)
        failed = sum(1 for o in outcomes if not o.ok)
        if failed:
            logger.warning(f"[ENGINE] {failed}/{len(outcomes)} detail lookups failed; returning partial results")
        return [o.value for o in outcomes if o.ok and o.value is not None]

    # ------------------------------------------------------------------
    # resolve_by_id
    # ------------------------------------------------------------------

    def resolve_by_id(self, external_id: str) -> ResolvedMovie:
        ext = (external_id or "").strip()
        if not ext:
            raise NotFound(external_id)

        try:
            existing = self.store.find_one(ext)
        except Exception as exc:
            logger.error(f"[ENGINE] record store read failed for {ext}: {exc!r}")
            raise InternalFailure(f"record store read failed for {ext}") from exc

        now = self._clock()

        if existing is not None:
            try:
                counted = self.store.increment_search_count(ext, now)
            except (RecordStoreError, OSError) as exc:
                logger.warning(f"[ENGINE] search bookkeeping not saved for {ext}: {exc}")
                existing.search_count += 1
                existing.last_searched_at = now
                counted = existing
            if counted is not None:
                _dbg(f"{ext} served from store (count={counted.search_count})")
                return ResolvedMovie(movie=counted, source="store")
            # Borrado entre find_one e increment: se resuelve como un miss.

        try:
            movie = self.client.find_by_id(ext)
        except NotFound:
            _dbg(f"{ext} not found upstream")
            raise
        except UpstreamError as exc:
            logger.warning(f"[ENGINE] upstream lookup failed for {ext}: {exc}")
            raise UpstreamUnavailable(f"catalog unavailable while resolving {ext}") from exc

        movie.search_count = 1
        movie.last_searched_at = now
        movie.created_at = now

        record = _persistable(movie)
        try:
            self.store.upsert(record)
        except (RecordStoreError, OSError) as exc:
            degraded = PersistenceDegraded(ext, str(exc))
            logger.warning(f"[ENGINE] {degraded}")
            return ResolvedMovie(movie=movie, source="upstream-unsaved")

        _dbg(f"{ext} fetched upstream and saved")
        return ResolvedMovie(movie=record, source="upstream")

    # ------------------------------------------------------------------
    # resolve_search
    # ------------------------------------------------------------------

    def resolve_search(
        self,
        query: str,
        page: int = 1,
        sort: str = "recent",
        filters: Mapping[str, object] | None = None,
    ) -> SearchResult:
        term = sanitize_search_query(query)
        page_n = max(1, int(page))
        sort_key = normalize_sort(sort)
        if not term:
            return SearchResult(movies=[], total_results=0, current_page=page_n, source="store", total_pages=0)

        store_query = build_store_query(term, filters)
        fp = fingerprint(
            KIND_SEARCH,
            {"search": term, "page": page_n, "sort": sort_key, "filters": store_query.as_params()},
        )

        cached = self._cached_result(fp)
        if cached is not None:
            _dbg(f"search {term!r} p{page_n} served from cache")
            return cached

        size = self._tuning.search_page_size
        movies, total = self._read_store(store_query, sort_key, (page_n - 1) * size, size)

        if len(movies) >= size or page_n > 1:
            result = SearchResult(
                movies=movies,
                total_results=total,
                current_page=page_n,
                source="store",
                total_pages=_total_pages(total, size),
            )
            self._remember(fp, result, self._tuning.store_ttl_seconds)
            return result

        try:
            upstream_page = self.client.search(term, page_n, year=store_query.year)
        except UpstreamError as exc:
            logger.warning(f"[ENGINE] upstream search failed for {term!r}: {exc}")
            raise UpstreamUnavailable(f"catalog unavailable while searching {term!r}") from exc

        result = SearchResult(
            movies=self._upstream_details(upstream_page.ids),
            total_results=upstream_page.total_results,
            current_page=page_n,
            source="upstream",
            total_pages=_total_pages(upstream_page.total_results, size),
        )
        self._remember(fp, result, self._tuning.upstream_ttl_seconds)
        return result

    # ------------------------------------------------------------------
    # trending / listado / borrado
    # ------------------------------------------------------------------

    def resolve_trending(self) -> SearchResult:
        fp = fingerprint(KIND_TRENDING, {"year": self.trend.target_year()})
        cached = self._cached_result(fp)
        if cached is not None:
            return cached

        snapshot = self.trend.snapshot()
        result = SearchResult(
            movies=self._upstream_details(snapshot.ids),
            total_results=snapshot.total_accumulated,
            current_page=1,
            source="upstream",
        )
        if result.movies:
            self._remember(fp, result, self._tuning.upstream_ttl_seconds)
        return result

    def list_movies(
        self,
        page: int = 1,
        sort: str = "recent",
        filters: Mapping[str, object] | None = None,
    ) -> SearchResult:
        page_n = max(1, int(page))
        size = self._tuning.list_page_size
        movies, total = self._read_store(build_store_query("", filters), normalize_sort(sort), (page_n - 1) * size, size)
        return SearchResult(
            movies=movies,
            total_results=total,
            current_page=page_n,
            source="store",
            total_pages=_total_pages(total, size),
        )

    def update_movie(self, external_id: str, fields: Mapping[str, object]) -> Movie:
        """
        Edición parcial de un record existente (claves wire, p.ej. {"title": ..., "rating": ...}).

        NotFound si el id no está en el store; InvalidUpdate si no hay claves editables o el
        record resultante no pasa la validación; InternalFailure si el store no puede escribir.
        No invalida entradas de cache: expiran por TTL.
        """
        ext = (external_id or "").strip()
        editable = {k: v for k, v in (fields or {}).items() if k in UPDATABLE_FIELDS}
        if not editable:
            raise InvalidUpdate(f"no updatable fields for {ext or external_id!r}")

        try:
            updated = self.store.update_one(ext, editable, self._clock()) if ext else None
        except InvalidRecord as exc:
            raise InvalidUpdate(str(exc)) from exc
        except (RecordStoreError, OSError) as exc:
            logger.error(f"[ENGINE] update failed for {ext}: {exc!r}")
            raise InternalFailure(f"could not update {ext}") from exc
        if updated is None:
            raise NotFound(external_id)

        logger.info(f"[ENGINE] updated {ext}: {sorted(editable)}")
        return updated

    def delete_movie(self, external_id: str) -> None:
        ext = (external_id or "").strip()
        try:
            deleted = self.store.delete_one(ext) if ext else False
        except (RecordStoreError, OSError) as exc:
            logger.error(f"[ENGINE] delete failed for {ext}: {exc!r}")
            raise InternalFailure(f"could not delete {ext}") from exc
        if not deleted:
            raise NotFound(external_id)
        logger.info(f"[ENGINE] deleted {ext}")

    def close(self) -> None:
        self.cache.close()
        self.client.close()


def build_engine(
    *,
    cache_path: Path | None = CACHE_PATH,
    store_path: Path | None = RECORD_STORE_PATH,
    client: CatalogClient | None = None,
) -> ResolutionEngine:
    """Construye el engine con la configuración de backend.config."""
    cache = CacheStore(
        cache_path,
        default_ttl_seconds=CACHE_TTL_DEFAULT_SECONDS,
        flush_max_dirty_writes=CACHE_FLUSH_MAX_DIRTY_WRITES,
        flush_max_seconds=CACHE_FLUSH_MAX_SECONDS,
        register_atexit=True,
    )
    store = JsonRecordStore(store_path)
    catalog = client or CatalogClient()
    return ResolutionEngine(cache=cache, store=store, client=catalog, trend=TrendApproximator(catalog))
