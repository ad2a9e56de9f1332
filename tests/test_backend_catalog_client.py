import pytest
import requests

from backend.catalog_client import CatalogClient
from backend.errors import NotFound, UpstreamError
from backend.resilience import CircuitBreaker
from catalog_fakes import FakeResponse, FakeSession, omdb_detail, omdb_search


def _client(router, **kwargs):
    session = FakeSession(router=router)
    kwargs.setdefault("api_key", "k")
    return CatalogClient(base_url="https://omdb.test/", max_concurrency=4, session=session, **kwargs), session


def test_find_by_id_normalizes_and_sends_detail_params(catalog_client, omdb_router, fake_session):
    omdb_router.details["tt0468569"] = omdb_detail("tt0468569", Title="The Dark Knight")

    movie = catalog_client.find_by_id("tt0468569")

    assert movie.title == "The Dark Knight"
    assert movie.normalized_rating == 4.5
    call = fake_session.calls[-1]
    assert call["i"] == "tt0468569"
    assert call["plot"] == "full"
    assert call["apikey"] == "test-key"


def test_find_by_id_not_found(catalog_client):
    with pytest.raises(NotFound):
        catalog_client.find_by_id("tt9999999")


@pytest.mark.parametrize(
    "reply",
    [
        FakeResponse(503, {}),
        FakeResponse(200, ValueError("bad json")),
        FakeResponse(200, ["not", "a", "dict"]),
        FakeResponse(200, {"Response": "False", "Error": "Invalid API key!"}),
        FakeResponse(200, {"Response": "False", "Error": "Request limit reached!"}),
        requests.exceptions.ConnectTimeout("slow"),
        requests.exceptions.ConnectionError("refused"),
    ],
)
def test_find_by_id_upstream_errors(reply):
    client, _ = _client(lambda params: reply)
    with pytest.raises(UpstreamError):
        client.find_by_id("tt1")


def test_missing_api_key_is_upstream_error_without_http():
    client, session = _client(lambda params: FakeResponse(200, {}), api_key=None)
    with pytest.raises(UpstreamError):
        client.find_by_id("tt1")
    assert session.calls == []


def test_search_returns_page_and_empty_on_no_results(catalog_client, omdb_router, fake_session):
    omdb_router.searches[("batman", "1", None)] = omdb_search(["tt1", "tt2"], total=57)

    page = catalog_client.search("batman!", 1)
    assert page.total_results == 57
    assert page.ids == ["tt1", "tt2"]
    assert fake_session.calls[-1]["type"] == "movie"
    assert fake_session.calls[-1]["s"] == "batman"

    empty = catalog_client.search("nothing-here", 2)
    assert empty.movies == [] and empty.total_results == 0 and empty.page == 2


def test_search_with_year_and_empty_term(catalog_client, omdb_router, fake_session):
    omdb_router.searches[("war", "1", "2024")] = omdb_search(["tt5"])
    assert catalog_client.search("war", 1, year=2024).ids == ["tt5"]

    before = len(fake_session.calls)
    assert catalog_client.search("!!!", 1).movies == []
    assert len(fake_session.calls) == before


def test_find_many_by_id_preserves_order_with_partial_failures():
    ids = [f"tt{i}" for i in range(10)]
    failing = {"tt2", "tt5", "tt7"}

    def router(params):
        i = params["i"]
        if i in failing:
            return requests.exceptions.ReadTimeout("timeout")
        if i == "tt9":
            return FakeResponse(200, {"Response": "False", "Error": "Movie not found!"})
        return FakeResponse(200, omdb_detail(i))

    client, _ = _client(router, breaker=CircuitBreaker(failure_threshold=100))
    outcomes = client.find_many_by_id(ids)

    assert [o.external_id for o in outcomes] == ids
    assert [o.external_id for o in outcomes if not o.ok] == ["tt2", "tt5", "tt7", "tt9"]
    assert all(isinstance(o.error, UpstreamError) for o in outcomes if o.external_id in failing)
    assert isinstance(outcomes[9].error, NotFound)
    assert [o.value.external_id for o in outcomes if o.ok] == ["tt0", "tt1", "tt3", "tt4", "tt6", "tt8"]


def test_find_many_by_id_empty():
    client, session = _client(lambda params: FakeResponse(200, {}))
    assert client.find_many_by_id([]) == []
    assert session.calls == []


def test_breaker_opens_after_consecutive_failures():
    client, session = _client(
        lambda params: FakeResponse(500, {}),
        breaker=CircuitBreaker(failure_threshold=2, open_seconds=60),
    )
    for _ in range(2):
        with pytest.raises(UpstreamError):
            client.find_by_id("tt1")

    with pytest.raises(UpstreamError, match="circuit open"):
        client.find_by_id("tt1")
    assert len(session.calls) == 2
    assert client.get_metrics_snapshot()["circuit_rejections"] == 1
    assert client.breaker_states()["detail"] == "OPEN"


def test_not_found_does_not_trip_breaker(catalog_client):
    for _ in range(10):
        with pytest.raises(NotFound):
            catalog_client.find_by_id("tt-missing")
    assert catalog_client.breaker_states()["detail"] == "CLOSED"
