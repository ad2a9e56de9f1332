from __future__ import annotations

"""Fakes de red para el cliente del catálogo (sin HTTP real)."""

import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field


@dataclass(slots=True)
class FakeResponse:
    status_code: int = 200
    payload: object = None
    text: str = ""

    def json(self) -> object:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


@dataclass
class FakeSession:
    """
    Sustituto de requests.Session con routing programable.

    `router(params) -> FakeResponse | Exception`; una Exception se lanza desde get().
    """

    router: Callable[[Mapping[str, str]], object]
    calls: list[dict[str, str]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def get(self, url: str, params: Mapping[str, str] | None = None, timeout: float | None = None) -> FakeResponse:
        p = dict(params or {})
        with self._lock:
            self.calls.append(p)
        out = self.router(p)
        if isinstance(out, Exception):
            raise out
        assert isinstance(out, FakeResponse)
        return out

    def close(self) -> None:
        return None

    def calls_with(self, key: str) -> list[dict[str, str]]:
        with self._lock:
            return [c for c in self.calls if key in c]


def omdb_detail(imdb_id: str, **overrides: object) -> dict[str, object]:
    data: dict[str, object] = {
        "Title": f"Movie {imdb_id}",
        "Year": "2008",
        "Rated": "PG-13",
        "Runtime": "152 min",
        "Genre": "Action, Crime, Drama",
        "Director": "Christopher Nolan",
        "Actors": "Christian Bale, Heath Ledger",
        "Plot": "A vigilante protects a city.",
        "Language": "English, Mandarin",
        "Country": "United States",
        "Awards": "Won 2 Oscars",
        "Poster": f"https://img.example/{imdb_id}.jpg",
        "Metascore": "84",
        "imdbRating": "9.0",
        "imdbVotes": "2,900,000",
        "imdbID": imdb_id,
        "BoxOffice": "$534,858,444",
        "Response": "True",
    }
    data.update(overrides)
    return data


def omdb_search(ids: list[str], total: int | None = None) -> dict[str, object]:
    return {
        "Search": [{"Title": f"Movie {i}", "Year": "2008", "imdbID": i, "Type": "movie"} for i in ids],
        "totalResults": str(total if total is not None else len(ids)),
        "Response": "True",
    }


NOT_FOUND = {"Response": "False", "Error": "Movie not found!"}


class OmdbRouter:
    """Router sencillo: detalles por id y búsquedas por (s, page, y)."""

    def __init__(self) -> None:
        self.details: dict[str, object] = {}
        self.searches: dict[tuple[str, str, str | None], object] = {}

    def __call__(self, params: Mapping[str, str]) -> object:
        if "i" in params:
            out = self.details.get(params["i"], NOT_FOUND)
        else:
            key = (params.get("s", ""), params.get("page", "1"), params.get("y"))
            out = self.searches.get(key, NOT_FOUND)
        if isinstance(out, (FakeResponse, Exception)):
            return out
        return FakeResponse(200, out)
