import requests

from backend.trending import TrendApproximator
from catalog_fakes import omdb_search


def _trend(client, **kwargs):
    kwargs.setdefault("terms", ("the", "new", "love"))
    kwargs.setdefault("year_provider", lambda: 2024)
    return TrendApproximator(client, **kwargs)


def test_dedup_and_fixed_merge_order(catalog_client, omdb_router):
    omdb_router.searches[("the", "1", "2024")] = omdb_search([f"a{i}" for i in range(10)])
    omdb_router.searches[("the", "2", "2024")] = omdb_search(["a0", "b0", "b1"])
    omdb_router.searches[("new", "1", "2024")] = omdb_search(["b1", "c0", "c1"])
    omdb_router.searches[("love", "1", "2024")] = omdb_search(["d0"])

    snap = _trend(catalog_client, page_size=20).snapshot()

    # Ronda 1: página 1 de cada término; ronda 2: página 2 de "the".
    expected = [f"a{i}" for i in range(10)] + ["b1", "c0", "c1", "d0", "b0"]
    assert snap.ids == expected
    assert snap.total_accumulated == 15
    assert snap.year == 2024
    assert len(set(snap.ids)) == len(snap.ids)

    again = _trend(catalog_client, page_size=20).snapshot()
    assert again.ids == expected


def test_cap_short_circuits_upstream_calls(catalog_client, omdb_router, fake_session):
    terms = ("the", "new", "love", "war", "day", "night")
    for term in terms:
        for page in ("1", "2", "3"):
            omdb_router.searches[(term, page, "2024")] = omdb_search([f"{term}{page}-{i}" for i in range(10)])

    snap = _trend(catalog_client, terms=terms).snapshot()

    assert snap.total_accumulated == 40
    searches = fake_session.calls_with("s")
    assert len(searches) == 4
    assert sorted(c["s"] for c in searches) == ["love", "new", "the", "war"]
    assert {c["page"] for c in searches} == {"1"}


def test_empty_page_stops_paging_for_term(catalog_client, omdb_router, fake_session):
    omdb_router.searches[("the", "1", "2024")] = omdb_search([f"a{i}" for i in range(12)])

    _trend(catalog_client, terms=("the",), min_results=0).snapshot()

    pages = sorted(c["page"] for c in fake_session.calls_with("s"))
    assert pages == ["1", "2"]


def test_fallback_to_previous_year_when_too_few(catalog_client, omdb_router):
    omdb_router.searches[("the", "1", "2024")] = omdb_search(["n0", "n1"])
    omdb_router.searches[("the", "1", "2023")] = omdb_search(["n1"] + [f"p{i}" for i in range(10)])

    snap = _trend(catalog_client, terms=("the",), min_results=10, page_size=5).snapshot()

    assert snap.ids == ["n0", "n1", "p0", "p1", "p2"]
    assert snap.total_accumulated == 12


def test_accumulation_cap(catalog_client, omdb_router):
    for term in ("the", "new"):
        for page in ("1", "2", "3"):
            omdb_router.searches[(term, page, "2024")] = omdb_search([f"{term}{page}-{i}" for i in range(10)])

    snap = _trend(catalog_client, terms=("the", "new")).snapshot()

    assert snap.total_accumulated == 40
    assert len(snap.items) == 20
    assert snap.ids[0] == "the1-0"


def test_failed_attempts_are_skipped(catalog_client, omdb_router):
    omdb_router.searches[("the", "1", "2024")] = requests.exceptions.ReadTimeout("slow")
    omdb_router.searches[("the", "2", "2024")] = omdb_search([f"x{i}" for i in range(10)])

    snap = _trend(catalog_client, terms=("the",)).snapshot()

    assert snap.ids == [f"x{i}" for i in range(10)]


def test_accumulation_cap_stops_between_rounds(catalog_client, omdb_router, fake_session):
    for term in ("the", "new"):
        for page in ("1", "2", "3"):
            omdb_router.searches[(term, page, "2024")] = omdb_search([f"{term}{page}-{i}" for i in range(10)])

    _trend(catalog_client, terms=("the", "new")).snapshot()

    pages = sorted((c["s"], c["page"]) for c in fake_session.calls_with("s"))
    assert pages == [("new", "1"), ("new", "2"), ("the", "1"), ("the", "2")]
