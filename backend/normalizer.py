from __future__ import annotations

"""
backend/normalizer.py

Normalización de payloads upstream -> Movie canónica.

Dos formas de upstream con nombres de campo disjuntos:
- FlatCatalogPayload:       record plano estilo OMDb (Title, Year, Genre, imdbRating, "N/A"...)
- StructuredCatalogPayload: record estructurado estilo TMDB (genres[], credits.crew[], vote_average...)

El caller elige la variante envolviendo el dict (tagged union) y llama a `normalize()`.
No hay duck-typing por presencia de campos.

Principios
----------
- Puro y total: nunca lanza ante un payload bien formado; sentinels ("N/A") y claves
  ausentes degradan a defaults documentados.
- Sin logging (módulo core silencioso).
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final, Literal, TypeAlias

from backend.models import MIN_RELEASE_YEAR, Movie

SENTINEL: Final[str] = "N/A"
UNKNOWN_DIRECTOR: Final[str] = "Unknown"
TMDB_POSTER_BASE: Final[str] = "https://image.tmdb.org/t/p/w500"
SEARCH_QUERY_MAX_CHARS: Final[int] = 100
STRUCTURED_MAX_ACTORS: Final[int] = 5

_INT_RUN_RE: Final[re.Pattern[str]] = re.compile(r"(\d+)")
_YEAR_RE: Final[re.Pattern[str]] = re.compile(r"(\d{4})")
_QUERY_STRIP_RE: Final[re.Pattern[str]] = re.compile(r"[^\w\s-]")


@dataclass(frozen=True, slots=True)
class FlatCatalogPayload:
    raw: Mapping[str, object] = field(default_factory=dict)
    kind: Literal["flat"] = "flat"


@dataclass(frozen=True, slots=True)
class StructuredCatalogPayload:
    raw: Mapping[str, object] = field(default_factory=dict)
    kind: Literal["structured"] = "structured"


CatalogPayload: TypeAlias = FlatCatalogPayload | StructuredCatalogPayload


# ============================================================
# Helpers puros
# ============================================================


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        s = value.strip()
        return not s or s == SENTINEL
    return False


def _clean_str(value: object, default: str = "") -> str:
    if _is_missing(value):
        return default
    return str(value).strip()


def _opt_str(value: object) -> str | None:
    return None if _is_missing(value) else str(value).strip()


def _safe_float(value: object) -> float | None:
    if _is_missing(value) or isinstance(value, bool):
        return None
    try:
        out = float(str(value).replace(",", "").strip())
    except (ValueError, TypeError):
        return None
    if out != out or out in (float("inf"), float("-inf")):
        return None
    return out


def rescale_rating(upstream_rating: float | None) -> float:
    """Rating upstream (0-10) / 2, redondeado a 1 decimal y acotado a [0, 10]."""
    if upstream_rating is None:
        return 0.0
    return min(10.0, max(0.0, round(upstream_rating / 2, 1)))


def parse_runtime(text: object) -> int | None:
    """Primer bloque de dígitos ("142 min" -> 142). Sin match o <= 0 -> None."""
    if isinstance(text, bool):
        return None
    if isinstance(text, int):
        return text if text > 0 else None
    if _is_missing(text) or not isinstance(text, str):
        return None
    m = _INT_RUN_RE.search(text)
    if not m:
        return None
    value = int(m.group(1))
    return value if value > 0 else None


def parse_year(value: object) -> int | None:
    """Año principal ("1994", "1994–1996", "2019-05-01"). < 1888 -> None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        year = value
    else:
        if _is_missing(value) or not isinstance(value, str):
            return None
        m = _YEAR_RE.search(value)
        if not m:
            return None
        year = int(m.group(1))
    return year if year >= MIN_RELEASE_YEAR else None


def split_list(value: object) -> list[str]:
    """Split por coma + trim; descarta vacíos y sentinels. Sin duplicados, orden preservado."""
    if not isinstance(value, str):
        return []
    out: list[str] = []
    for part in value.split(","):
        p = part.strip()
        if not p or p == SENTINEL or p in out:
            continue
        out.append(p)
    return out


def sanitize_search_query(term: object) -> str:
    """Quita todo salvo alfanuméricos/espacio/guion, trim y cap de longitud."""
    if not isinstance(term, str):
        return ""
    cleaned = _QUERY_STRIP_RE.sub("", term.strip())
    return cleaned[:SEARCH_QUERY_MAX_CHARS].strip()


def extract_external_id(summary: Mapping[str, object]) -> str | None:
    """Id de un resumen de búsqueda (imdbID / imdb_id / id)."""
    for key in ("imdbID", "imdb_id", "id"):
        v = summary.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
    return None


def _names(items: object, *, key: str = "name") -> list[str]:
    if not isinstance(items, list):
        return []
    out: list[str] = []
    for it in items:
        if not isinstance(it, Mapping):
            continue
        name = _opt_str(it.get(key))
        if name and name not in out:
            out.append(name)
    return out


# ============================================================
# Variantes
# ============================================================


def normalize_flat(raw: Mapping[str, object]) -> Movie:
    """Record plano (OMDb, i=<id>)."""
    upstream_rating = _safe_float(raw.get("imdbRating"))
    metascore = _safe_float(raw.get("Metascore"))

    return Movie(
        external_id=_clean_str(raw.get("imdbID")),
        title=_clean_str(raw.get("Title"), "Untitled"),
        release_year=parse_year(raw.get("Year")),
        genres=split_list(raw.get("Genre")),
        director=_clean_str(raw.get("Director"), UNKNOWN_DIRECTOR),
        actors=split_list(raw.get("Actors")),
        normalized_rating=rescale_rating(upstream_rating),
        runtime_minutes=parse_runtime(raw.get("Runtime")),
        plot=_clean_str(raw.get("Plot")),
        poster_url=_opt_str(raw.get("Poster")),
        language=_clean_str(raw.get("Language")),
        country=_clean_str(raw.get("Country")),
        awards=_clean_str(raw.get("Awards")),
        metascore=int(metascore) if metascore is not None else None,
        raw_upstream_rating=upstream_rating if upstream_rating is not None else 0.0,
        vote_count=_clean_str(raw.get("imdbVotes"), "0"),
        box_office=_opt_str(raw.get("BoxOffice")),
    )


def normalize_structured(raw: Mapping[str, object]) -> Movie:
    """Record estructurado (TMDB: genres[], credits{cast,crew}, vote_average...)."""
    credits = raw.get("credits")
    crew = credits.get("crew") if isinstance(credits, Mapping) else None
    cast = credits.get("cast") if isinstance(credits, Mapping) else None

    director = UNKNOWN_DIRECTOR
    if isinstance(crew, list):
        for member in crew:
            if isinstance(member, Mapping) and member.get("job") == "Director":
                name = _opt_str(member.get("name"))
                if name:
                    director = name
                    break

    vote_average = raw.get("vote_average")
    upstream_rating = (
        float(vote_average) if isinstance(vote_average, (int, float)) and not isinstance(vote_average, bool) else None
    )

    runtime_raw = raw.get("runtime")
    if isinstance(runtime_raw, list):
        runtime_raw = runtime_raw[0] if runtime_raw else None

    poster_path = _opt_str(raw.get("poster_path"))
    revenue = raw.get("revenue")
    vote_count = raw.get("vote_count")

    external_id = _opt_str(raw.get("imdb_id"))
    if external_id is None:
        tmdb_id = raw.get("id")
        external_id = str(tmdb_id) if tmdb_id not in (None, "") else ""

    return Movie(
        external_id=external_id,
        title=_clean_str(raw.get("title"), "") or _clean_str(raw.get("name"), "Untitled"),
        release_year=parse_year(raw.get("release_date")),
        genres=_names(raw.get("genres")),
        director=director,
        actors=_names(cast)[:STRUCTURED_MAX_ACTORS],
        normalized_rating=rescale_rating(upstream_rating),
        runtime_minutes=parse_runtime(runtime_raw),
        plot=_clean_str(raw.get("overview")),
        poster_url=f"{TMDB_POSTER_BASE}{poster_path}" if poster_path else None,
        language=", ".join(_names(raw.get("spoken_languages"), key="english_name")),
        country=", ".join(_names(raw.get("production_countries"))),
        awards="",
        metascore=None,
        raw_upstream_rating=upstream_rating if upstream_rating is not None else 0.0,
        vote_count=str(vote_count) if isinstance(vote_count, int) and not isinstance(vote_count, bool) else "0",
        box_office=f"${revenue}" if isinstance(revenue, (int, float)) and revenue else None,
    )


def normalize(payload: CatalogPayload) -> Movie:
    """Dispatch explícito por variante."""
    if isinstance(payload, StructuredCatalogPayload):
        return normalize_structured(payload.raw)
    return normalize_flat(payload.raw)
