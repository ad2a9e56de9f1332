from __future__ import annotations

"""
backend/models.py

Modelos canónicos del engine.

- Movie: forma única post-normalización (independiente del upstream).
- SearchResult: resultado transitorio de búsqueda/listado con provenance.
- ResolvedMovie: resultado de una resolución por id con provenance.

Serialización
-------------
`Movie.to_dict()` usa los nombres "wire" que consumen cache, record store y la capa HTTP
(imdbID, year, genre, rating, runtime, poster, imdbRating, imdbVotes, boxOffice, ...).
`Movie.from_dict()` es tolerante: campos ausentes/incorrectos degradan a defaults.

`external_id` es la ÚNICA clave de join entre cache, store y upstream.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Literal

SearchSource = Literal["cache", "store", "upstream"]
ResolveSource = Literal["store", "upstream", "upstream-unsaved"]

MIN_RELEASE_YEAR = 1888


def _opt_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)  # type: ignore[arg-type]
    except (ValueError, TypeError):
        return None


def _opt_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        out = float(value)  # type: ignore[arg-type]
    except (ValueError, TypeError):
        return None
    return out if math.isfinite(out) else None


def _str_list(value: object) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v) for v in value if isinstance(v, str) and v.strip()]


def _opt_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


@dataclass(slots=True)
class Movie:
    """
    Película canónica.

    Campos operacionales (search_count, last_searched_at, created_at, last_updated_at)
    son propiedad exclusiva del ResolutionEngine y del record store; el Normalizer
    nunca los rellena.
    """

    external_id: str
    title: str
    release_year: int | None = None
    genres: list[str] = field(default_factory=list)
    director: str = "Unknown"
    actors: list[str] = field(default_factory=list)
    normalized_rating: float = 0.0
    runtime_minutes: int | None = None
    plot: str = ""
    poster_url: str | None = None
    language: str = ""
    country: str = ""
    awards: str = ""
    metascore: int | None = None
    raw_upstream_rating: float = 0.0
    vote_count: str = "0"
    box_office: str | None = None

    search_count: int = 0
    last_searched_at: float | None = None
    created_at: float | None = None
    last_updated_at: float | None = None

    def content_equals(self, other: "Movie") -> bool:
        """Compara solo el contenido (ignora campos operacionales)."""
        a = replace(self, search_count=0, last_searched_at=None, created_at=None, last_updated_at=None)
        b = replace(other, search_count=0, last_searched_at=None, created_at=None, last_updated_at=None)
        return a == b

    def to_dict(self) -> dict[str, object]:
        return {
            "imdbID": self.external_id,
            "title": self.title,
            "year": self.release_year,
            "genre": list(self.genres),
            "director": self.director,
            "actors": list(self.actors),
            "rating": self.normalized_rating,
            "runtime": self.runtime_minutes,
            "plot": self.plot,
            "poster": self.poster_url,
            "language": self.language,
            "country": self.country,
            "awards": self.awards,
            "metascore": self.metascore,
            "imdbRating": self.raw_upstream_rating,
            "imdbVotes": self.vote_count,
            "boxOffice": self.box_office,
            "searchCount": self.search_count,
            "lastSearched": self.last_searched_at,
            "createdAt": self.created_at,
            "lastUpdated": self.last_updated_at,
        }

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Movie":
        rating = _opt_float(data.get("rating"))
        raw_rating = _opt_float(data.get("imdbRating"))
        search_count = _opt_int(data.get("searchCount"))
        votes = data.get("imdbVotes")

        return Movie(
            external_id=str(data.get("imdbID") or ""),
            title=str(data.get("title") or ""),
            release_year=_opt_int(data.get("year")),
            genres=_str_list(data.get("genre")),
            director=_opt_str(data.get("director")) or "Unknown",
            actors=_str_list(data.get("actors")),
            normalized_rating=rating if rating is not None else 0.0,
            runtime_minutes=_opt_int(data.get("runtime")),
            plot=str(data.get("plot") or ""),
            poster_url=_opt_str(data.get("poster")),
            language=str(data.get("language") or ""),
            country=str(data.get("country") or ""),
            awards=str(data.get("awards") or ""),
            metascore=_opt_int(data.get("metascore")),
            raw_upstream_rating=raw_rating if raw_rating is not None else 0.0,
            vote_count=str(votes) if votes not in (None, "") else "0",
            box_office=_opt_str(data.get("boxOffice")),
            search_count=max(0, search_count or 0),
            last_searched_at=_opt_float(data.get("lastSearched")),
            created_at=_opt_float(data.get("createdAt")),
            last_updated_at=_opt_float(data.get("lastUpdated")),
        )


@dataclass(slots=True)
class SearchResult:
    movies: list[Movie]
    total_results: int
    current_page: int
    source: SearchSource
    total_pages: int | None = None

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {
            "movies": [m.to_dict() for m in self.movies],
            "totalResults": self.total_results,
            "currentPage": self.current_page,
            "source": self.source,
        }
        if self.total_pages is not None:
            out["totalPages"] = self.total_pages
        return out

    @staticmethod
    def from_dict(data: Mapping[str, object], *, source: SearchSource) -> "SearchResult":
        """
        Reconstruye desde un payload cacheado. `source` lo decide el caller
        (un hit de cache siempre se reporta como "cache").
        """
        movies_raw = data.get("movies")
        movies = [Movie.from_dict(m) for m in movies_raw if isinstance(m, Mapping)] if isinstance(movies_raw, list) else []
        return SearchResult(
            movies=movies,
            total_results=max(0, _opt_int(data.get("totalResults")) or 0),
            current_page=max(1, _opt_int(data.get("currentPage")) or 1),
            source=source,
            total_pages=_opt_int(data.get("totalPages")),
        )


@dataclass(frozen=True, slots=True)
class ResolvedMovie:
    movie: Movie
    source: ResolveSource
