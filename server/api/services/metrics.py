from __future__ import annotations

"""
Contadores in-process de la API + render en formato texto Prometheus.

Los snapshots del engine (cliente del catálogo, cache) se pasan como `extra`
y se exponen con prefijo propio.
"""

from collections.abc import Mapping
from threading import RLock

_LOCK = RLock()
_METRICS: dict[str, int] = {
    "http_requests_total": 0,
    "http_errors_4xx_total": 0,
    "http_errors_5xx_total": 0,
    "movie_lookups_total": 0,
    "movie_searches_total": 0,
    "movie_trending_total": 0,
    "upstream_unavailable_total": 0,
}


def inc(name: str, value: int = 1) -> None:
    with _LOCK:
        _METRICS[name] = _METRICS.get(name, 0) + value


def snapshot() -> dict[str, int]:
    with _LOCK:
        return dict(_METRICS)


def render_prometheus(extra: Mapping[str, Mapping[str, int]] | None = None) -> str:
    merged = snapshot()
    for prefix, counters in (extra or {}).items():
        for k, v in counters.items():
            merged[f"{prefix}_{k}_total"] = int(v)

    lines: list[str] = []
    for k, v in sorted(merged.items()):
        lines.append(f"# TYPE {k} counter")
        lines.append(f"{k} {v}")
    return "\n".join(lines) + "\n"
