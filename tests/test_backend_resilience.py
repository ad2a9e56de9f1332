import threading

import pytest

import backend.resilience as res


def test_circuit_breaker_transitions(monkeypatch):
    now = [0.0]
    monkeypatch.setattr(res.time, "monotonic", lambda: now[0])

    breaker = res.CircuitBreaker(failure_threshold=2, open_seconds=1.0, half_open_max_calls=1)

    assert breaker.allow("svc") == (True, "closed")

    breaker.on_failure("svc", error="err-1")
    assert breaker.allow("svc") == (True, "closed")

    breaker.on_failure("svc", error="err-2")
    assert breaker.allow("svc") == (False, "open")

    now[0] = 2.0
    allowed, reason = breaker.allow("svc")
    assert allowed is True
    assert reason == "half_open:trial"

    allowed, reason = breaker.allow("svc")
    assert allowed is False
    assert "quota_reached" in reason

    breaker.on_success("svc")
    assert breaker.allow("svc") == (True, "closed")
    assert breaker.snapshot() == {"svc": "CLOSED"}


def test_failed_trial_call_reopens(monkeypatch):
    now = [0.0]
    monkeypatch.setattr(res.time, "monotonic", lambda: now[0])
    breaker = res.CircuitBreaker(failure_threshold=1, open_seconds=1.0)

    breaker.on_failure("svc", error="down")
    now[0] = 1.5
    assert breaker.allow("svc")[0] is True
    breaker.on_failure("svc", error="still down")

    assert breaker.allow("svc") == (False, "open")
    state = breaker.debug_state("svc")
    assert state is not None and state.last_error == "still down"


def test_call_counts_only_selected_failures():
    breaker = res.CircuitBreaker(failure_threshold=1, open_seconds=60.0)

    def not_found():
        raise KeyError("missing")

    with pytest.raises(KeyError):
        breaker.call("svc", not_found, is_failure=lambda exc: isinstance(exc, ValueError))
    assert breaker.allow("svc")[0] is True

    def broken():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        breaker.call("svc", broken, is_failure=lambda exc: isinstance(exc, ValueError))

    with pytest.raises(res.CircuitOpenError):
        breaker.call("svc", lambda: "ok", is_failure=lambda exc: True)


def test_single_flight_coalesces_concurrent_calls():
    flights: res.SingleFlight[str] = res.SingleFlight()
    started = threading.Event()
    release = threading.Event()
    calls = []

    def slow():
        calls.append(1)
        started.set()
        release.wait(5)
        return "value"

    results = []

    def worker():
        results.append(flights.do("tt1", slow))

    leader = threading.Thread(target=worker)
    leader.start()
    assert started.wait(5)

    followers = [threading.Thread(target=worker) for _ in range(3)]
    for t in followers:
        t.start()
    while flights.coalesced_calls < 3:
        threading.Event().wait(0.01)

    release.set()
    for t in [leader, *followers]:
        t.join(5)

    assert results == ["value"] * 4
    assert len(calls) == 1


def test_single_flight_propagates_errors_and_releases_key():
    flights: res.SingleFlight[str] = res.SingleFlight()

    def boom():
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        flights.do("k", boom)

    assert flights.do("k", lambda: "ok") == "ok"
