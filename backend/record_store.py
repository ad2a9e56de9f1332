from __future__ import annotations

"""
backend/record_store.py

Record store de películas (persistencia autoritativa, keyed por external_id).

- RecordStore: protocolo que consume el ResolutionEngine.
- StoreQuery / build_store_query: consulta estructurada (texto + filtros).
- JsonRecordStore: implementación local (fichero JSON, o solo memoria con path=None).

Validación (upsert / update_one)
--------------------------------
Rechaza con InvalidRecord (subclase de RecordStoreError):
- external_id o title vacíos
- año ausente o < 1888
- rating fuera de [0, 10]
- language compuesto (con coma): el índice de texto no admite idiomas compuestos

El engine quita el idioma compuesto antes de persistir lo que viene de upstream;
cualquier otro rechazo tras resolver en upstream es persistencia degradada.

Contadores
----------
increment_search_count() es atómico bajo el lock del store: dos lecturas concurrentes
del mismo id suman 2, nunca 1.
"""

import json
import os
import tempfile
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from backend import logger as logger
from backend.errors import InvalidRecord, RecordStoreError
from backend.models import MIN_RELEASE_YEAR, Movie

SORT_KEYS: tuple[str, ...] = ("title", "year", "rating", "runtime", "recent")
DEFAULT_SORT = "recent"

# Claves wire editables vía update_one (los campos operacionales e imdbID no lo son).
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "title",
        "year",
        "genre",
        "director",
        "actors",
        "rating",
        "runtime",
        "plot",
        "poster",
        "language",
        "country",
        "awards",
        "metascore",
        "imdbRating",
        "imdbVotes",
        "boxOffice",
    }
)


@dataclass(frozen=True, slots=True)
class StoreQuery:
    text: str = ""
    genre: str | None = None
    year: int | None = None
    min_rating: float | None = None

    def matches(self, movie: Movie) -> bool:
        if self.text:
            haystack = f"{movie.title} {movie.plot}".casefold()
            if not all(tok in haystack for tok in self.text.casefold().split()):
                return False
        if self.genre:
            g = self.genre.casefold()
            if not any(g in genre.casefold() for genre in movie.genres):
                return False
        if self.year is not None and movie.release_year != self.year:
            return False
        if self.min_rating is not None and movie.normalized_rating < self.min_rating:
            return False
        return True

    def as_params(self) -> dict[str, object]:
        return {"text": self.text, "genre": self.genre, "year": self.year, "minRating": self.min_rating}


def _parse_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _parse_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def build_store_query(text: str = "", filters: Mapping[str, object] | None = None) -> StoreQuery:
    """Filtros crudos (strings de query params) -> StoreQuery. Números inválidos se ignoran."""
    f = filters or {}
    genre = f.get("genre")
    return StoreQuery(
        text=(text or "").strip(),
        genre=genre.strip() if isinstance(genre, str) and genre.strip() else None,
        year=_parse_int(f.get("year")),
        min_rating=_parse_float(f.get("minRating")),
    )


def normalize_sort(sort: str | None) -> str:
    s = (sort or "").strip().lower()
    return s if s in SORT_KEYS else DEFAULT_SORT


def _sort_key(sort: str) -> Callable[[Movie], tuple]:
    # Los None van siempre al final; desempate estable por external_id.
    if sort == "title":
        return lambda m: (m.title.casefold(), m.external_id)
    if sort == "year":
        return lambda m: (m.release_year is None, -(m.release_year or 0), m.external_id)
    if sort == "rating":
        return lambda m: (-m.normalized_rating, m.external_id)
    if sort == "runtime":
        return lambda m: (m.runtime_minutes is None, -(m.runtime_minutes or 0), m.external_id)
    return lambda m: (m.created_at is None, -(m.created_at or 0.0), m.external_id)


class RecordStore(Protocol):
    def find_one(self, external_id: str) -> Movie | None: ...

    def find_many(self, query: StoreQuery, sort: str, skip: int, limit: int) -> list[Movie]: ...

    def count(self, query: StoreQuery) -> int: ...

    def upsert(self, movie: Movie) -> Movie: ...

    def increment_search_count(self, external_id: str, now: float) -> Movie | None: ...

    def update_one(self, external_id: str, fields: Mapping[str, object], now: float) -> Movie | None: ...

    def delete_one(self, external_id: str) -> bool: ...


def validate_record(movie: Movie) -> None:
    if not movie.external_id.strip():
        raise InvalidRecord("external_id is required")
    if not movie.title.strip():
        raise InvalidRecord(f"title is required ({movie.external_id})")
    if movie.release_year is None or movie.release_year < MIN_RELEASE_YEAR:
        raise InvalidRecord(f"invalid release year {movie.release_year!r} ({movie.external_id})")
    if not 0.0 <= movie.normalized_rating <= 10.0:
        raise InvalidRecord(f"rating out of range {movie.normalized_rating!r} ({movie.external_id})")
    if "," in movie.language:
        raise InvalidRecord(f"composite language not indexable {movie.language!r} ({movie.external_id})")


class JsonRecordStore:
    """
    Store local thread-safe.

    Persistencia: cada escritura reescribe el fichero de forma atómica
    (tmp + fsync + replace). Fichero ausente o corrupto => store vacío.
    """

    def __init__(self, path: Path | None = None, *, clock: Callable[[], float] = time.time) -> None:
        self._path = path
        self._clock = clock
        self._lock = threading.RLock()
        self._records: dict[str, dict[str, object]] = self._load()

    def _load(self) -> dict[str, dict[str, object]]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"[STORE] unreadable record store {self._path}: {exc!r}; starting empty", always=True)
            return {}
        if not isinstance(raw, list):
            return {}

        out: dict[str, dict[str, object]] = {}
        for rec in raw:
            if isinstance(rec, dict) and isinstance(rec.get("imdbID"), str) and rec["imdbID"]:
                out[str(rec["imdbID"])] = rec
        logger.debug_ctx("STORE", f"loaded {len(out)} records from {self._path}")
        return out

    def _save_unlocked(self) -> None:
        if self._path is None:
            return
        dirpath = self._path.parent
        dirpath.mkdir(parents=True, exist_ok=True)

        temp_name: str | None = None
        try:
            with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(dirpath)) as tf:
                json.dump(list(self._records.values()), tf, ensure_ascii=False)
                tf.flush()
                try:
                    os.fsync(tf.fileno())
                except OSError:
                    pass
                temp_name = tf.name
            os.replace(temp_name, str(self._path))
        except OSError as exc:
            raise RecordStoreError(f"cannot write record store: {exc!r}") from exc
        finally:
            if temp_name and os.path.exists(temp_name):
                try:
                    os.remove(temp_name)
                except OSError:
                    pass

    # ------------------------------------------------------------------
    # RecordStore
    # ------------------------------------------------------------------

    def find_one(self, external_id: str) -> Movie | None:
        with self._lock:
            rec = self._records.get(external_id)
        return Movie.from_dict(rec) if rec is not None else None

    def _matching(self, query: StoreQuery) -> list[Movie]:
        with self._lock:
            records = list(self._records.values())
        return [m for m in (Movie.from_dict(r) for r in records) if query.matches(m)]

    def find_many(self, query: StoreQuery, sort: str = DEFAULT_SORT, skip: int = 0, limit: int = 20) -> list[Movie]:
        movies = sorted(self._matching(query), key=_sort_key(normalize_sort(sort)))
        start = max(0, int(skip))
        return movies[start : start + max(0, int(limit))]

    def count(self, query: StoreQuery) -> int:
        return len(self._matching(query))

    def upsert(self, movie: Movie) -> Movie:
        validate_record(movie)
        with self._lock:
            existing = self._records.get(movie.external_id)
            if movie.created_at is None:
                prev = existing.get("createdAt") if existing else None
                movie.created_at = float(prev) if isinstance(prev, (int, float)) else self._clock()

            previous = existing
            self._records[movie.external_id] = movie.to_dict()
            try:
                self._save_unlocked()
            except RecordStoreError:
                if previous is None:
                    self._records.pop(movie.external_id, None)
                else:
                    self._records[movie.external_id] = previous
                raise
        return movie

    def _replace_unlocked(self, external_id: str, movie: Movie, previous: dict[str, object]) -> None:
        self._records[external_id] = movie.to_dict()
        try:
            self._save_unlocked()
        except RecordStoreError:
            self._records[external_id] = previous
            raise

    def increment_search_count(self, external_id: str, now: float) -> Movie | None:
        """search_count += 1 y last_searched_at = now en una sola sección crítica. None si no existe."""
        with self._lock:
            previous = self._records.get(external_id)
            if previous is None:
                return None
            movie = Movie.from_dict(previous)
            movie.search_count += 1
            movie.last_searched_at = now
            self._replace_unlocked(external_id, movie, previous)
        return movie

    def update_one(self, external_id: str, fields: Mapping[str, object], now: float) -> Movie | None:
        """
        Merge parcial de claves wire editables sobre el record existente.

        Claves fuera de UPDATABLE_FIELDS se ignoran. El resultado se valida igual que en upsert
        (InvalidRecord) y last_updated_at = now. None si el id no existe.
        """
        with self._lock:
            previous = self._records.get(external_id)
            if previous is None:
                return None
            merged = dict(previous)
            merged.update({k: v for k, v in fields.items() if k in UPDATABLE_FIELDS})
            movie = Movie.from_dict(merged)
            movie.last_updated_at = now
            validate_record(movie)
            self._replace_unlocked(external_id, movie, previous)
        return movie

    def delete_one(self, external_id: str) -> bool:
        with self._lock:
            previous = self._records.pop(external_id, None)
            if previous is None:
                return False
            try:
                self._save_unlocked()
            except RecordStoreError:
                self._records[external_id] = previous
                raise
        return True

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
