from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from backend.resolution_engine import ResolutionEngine
from server.api.deps import get_engine
from server.api.responses import envelope
from server.api.services import metrics

router = APIRouter(prefix="/movies")


def _filters(genre: str | None, year: str | None, min_rating: str | None) -> dict[str, object]:
    # Valores crudos: números inválidos se ignoran en build_store_query.
    return {k: v for k, v in (("genre", genre), ("year", year), ("minRating", min_rating)) if v}


@router.get("/search")
def search_movies(
    search: str = Query("", description="Texto a buscar (título/argumento)"),
    page: int = Query(1, ge=1),
    sort: str = Query("recent", description="title | year | rating | runtime | recent"),
    genre: str | None = Query(None),
    year: str | None = Query(None),
    min_rating: str | None = Query(None, alias="minRating"),
    engine: ResolutionEngine = Depends(get_engine),
) -> dict[str, Any]:
    if not search.strip():
        raise HTTPException(status_code=400, detail="Search query is required")

    metrics.inc("movie_searches_total", 1)
    result = engine.resolve_search(search, page=page, sort=sort, filters=_filters(genre, year, min_rating))
    return envelope(result.to_dict(), "Movies retrieved successfully")


@router.get("/trending")
def trending_movies(engine: ResolutionEngine = Depends(get_engine)) -> dict[str, Any]:
    metrics.inc("movie_trending_total", 1)
    result = engine.resolve_trending()
    return envelope(result.to_dict(), "Trending movies retrieved successfully")


@router.get("")
def list_movies(
    page: int = Query(1, ge=1),
    sort: str = Query("recent"),
    genre: str | None = Query(None),
    year: str | None = Query(None),
    min_rating: str | None = Query(None, alias="minRating"),
    engine: ResolutionEngine = Depends(get_engine),
) -> dict[str, Any]:
    result = engine.list_movies(page=page, sort=sort, filters=_filters(genre, year, min_rating))
    return envelope(result.to_dict(), "Movies retrieved successfully")


@router.get("/{external_id}")
def get_movie(external_id: str, engine: ResolutionEngine = Depends(get_engine)) -> dict[str, Any]:
    metrics.inc("movie_lookups_total", 1)
    resolved = engine.resolve_by_id(external_id)

    messages = {
        "store": "Movie retrieved from database",
        "upstream": "Movie retrieved and saved to database",
        "upstream-unsaved": "Movie retrieved from external API (not saved)",
    }
    data = {**resolved.movie.to_dict(), "source": resolved.source}
    return envelope(data, messages[resolved.source])


@router.put("/{external_id}")
def update_movie(
    external_id: str,
    fields: dict[str, Any] = Body(..., description="Campos wire a editar (title, year, genre, rating, ...)"),
    engine: ResolutionEngine = Depends(get_engine),
) -> dict[str, Any]:
    movie = engine.update_movie(external_id, fields)
    return envelope(movie.to_dict(), "Movie updated successfully")


@router.delete("/{external_id}")
def delete_movie(external_id: str, engine: ResolutionEngine = Depends(get_engine)) -> dict[str, Any]:
    engine.delete_movie(external_id)
    return envelope(None, "Movie deleted successfully")
