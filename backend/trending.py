from __future__ import annotations

"""
backend/trending.py

Aproximación de "trending" sin endpoint dedicado: búsquedas amplias filtradas por año.

Algoritmo
---------
1) Año objetivo = año actual.
2) Rondas: en cada ronda se pide en paralelo la siguiente página de cada término activo,
   pero solo de tantos términos como páginas faltan para el tope
   (ceil(restante / CATALOG_PAGE_ITEMS)). Una página vacía agota el término; un intento
   (término, página) fallido se loguea y se salta.
3) Merge por ronda y, dentro de la ronda, en orden de términos; dedup por external_id.
   Al alcanzar `accumulation_cap` no se programan más páginas.
4) Si hay menos de `min_results`: repetir con el año anterior y concatenar (dedup).
5) Truncar a `page_size`, informando del total acumulado real.

El orden del merge no depende del scheduling de hilos: misma respuesta upstream => mismo snapshot.
Con 6 términos, tope 40 y páginas llenas bastan 4 llamadas upstream.
"""

import datetime as _dt
import math
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from backend import logger as logger
from backend.catalog_client import CATALOG_PAGE_ITEMS, CatalogClient
from backend.config import (
    TREND_ACCUMULATION_CAP,
    TREND_MAX_PAGES,
    TREND_MIN_RESULTS,
    TREND_PAGE_SIZE,
    TREND_TERMS,
)
from backend.errors import NotFound, UpstreamError
from backend.normalizer import extract_external_id


@dataclass(frozen=True, slots=True)
class TrendSnapshot:
    items: list[dict[str, object]] = field(default_factory=list)
    total_accumulated: int = 0
    year: int = 0

    @property
    def ids(self) -> list[str]:
        return [ext for ext in (extract_external_id(it) for it in self.items) if ext]


def _current_year() -> int:
    return _dt.date.today().year


class TrendApproximator:
    def __init__(
        self,
        client: CatalogClient,
        *,
        terms: Sequence[str] = TREND_TERMS,
        max_pages: int = TREND_MAX_PAGES,
        accumulation_cap: int = TREND_ACCUMULATION_CAP,
        min_results: int = TREND_MIN_RESULTS,
        page_size: int = TREND_PAGE_SIZE,
        year_provider: Callable[[], int] = _current_year,
    ) -> None:
        self._client = client
        self._terms = tuple(terms)
        self._max_pages = max(1, int(max_pages))
        self._cap = max(1, int(accumulation_cap))
        self._min_results = max(0, int(min_results))
        self._page_size = max(1, int(page_size))
        self._year_provider = year_provider

    def _fetch_page(self, term: str, page: int, year: int) -> list[dict[str, object]] | None:
        """Items de (término, página); None si el intento falla (se loguea y se salta)."""
        try:
            return self._client.search(term, page, year=year).movies
        except (UpstreamError, NotFound) as exc:
            logger.warning(f"[TREND] search failed term={term!r} page={page} year={year}: {exc}")
            return None

    def _scan_year(self, year: int, accumulated: list[dict[str, object]], seen: set[str]) -> None:
        # dict: orden de términos estable, duplicados colapsados.
        next_page: dict[str, int] = {t: 1 for t in self._terms}
        if not next_page:
            return

        workers = min(len(next_page), 8)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="trend-scan") as pool:
            while len(accumulated) < self._cap:
                active = [t for t, p in next_page.items() if p <= self._max_pages]
                if not active:
                    return

                # Solo las páginas que aún pueden hacer falta para llegar al tope.
                wanted = math.ceil((self._cap - len(accumulated)) / CATALOG_PAGE_ITEMS)
                batch = [(t, next_page[t]) for t in active[:wanted]]
                pages = list(pool.map(lambda tp: self._fetch_page(tp[0], tp[1], year), batch))

                for (term, page), items in zip(batch, pages):
                    if items is not None and not items:
                        next_page[term] = self._max_pages + 1
                        continue
                    next_page[term] = page + 1
                    for item in items or ():
                        if len(accumulated) >= self._cap:
                            return
                        ext = extract_external_id(item)
                        if not ext or ext in seen:
                            continue
                        seen.add(ext)
                        accumulated.append(item)

    def target_year(self) -> int:
        return self._year_provider()

    def snapshot(self) -> TrendSnapshot:
        year = self.target_year()
        accumulated: list[dict[str, object]] = []
        seen: set[str] = set()

        self._scan_year(year, accumulated, seen)
        logger.debug_ctx("TREND", f"year={year} accumulated={len(accumulated)}")

        if len(accumulated) < self._min_results:
            before = len(accumulated)
            self._scan_year(year - 1, accumulated, seen)
            logger.info(f"[TREND] fallback to {year - 1}: +{len(accumulated) - before} items")

        return TrendSnapshot(
            items=accumulated[: self._page_size],
            total_accumulated=len(accumulated),
            year=year,
        )
