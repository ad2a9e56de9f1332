import json

import backend.cache_store as cs


def _store(clock, path=None, **kwargs):
    return cs.CacheStore(path, clock=lambda: clock[0], **kwargs)


def test_fingerprint_ignores_key_order():
    a = cs.fingerprint("movie_search", {"search": "batman", "page": 1, "filters": {"genre": "x", "year": 2008}})
    b = cs.fingerprint("movie_search", {"filters": {"year": 2008, "genre": "x"}, "page": 1, "search": "batman"})
    assert a == b
    assert a.startswith("movie_search:")
    assert a != cs.fingerprint("movie_search", {"search": "batman", "page": 2})


def test_set_get_and_ttl_expiry():
    clock = [100.0]
    store = _store(clock)

    assert store.get("k") is None
    assert store.set("k", {"movies": [1, 2]}, 10) is True
    assert store.get("k") == {"movies": [1, 2]}

    clock[0] = 109.9
    assert store.get("k") == {"movies": [1, 2]}

    clock[0] = 110.0
    assert store.get("k") is None


def test_payload_is_copied_on_write_and_read():
    clock = [0.0]
    store = _store(clock)
    payload = {"movies": ["a"]}
    store.set("k", payload, 60)

    payload["movies"].append("b")
    got = store.get("k")
    assert got == {"movies": ["a"]}

    got["movies"].append("c")
    assert store.get("k") == {"movies": ["a"]}


def test_set_rejects_unserializable_payload_without_raising():
    store = _store([0.0])
    assert store.set("k", {"bad": object()}, 60) is False
    assert store.set("k", {"ok": 1}, 0) is False
    assert store.get("k") is None
    assert store.metrics_snapshot()["write_failures"] == 2


def test_last_writer_wins_and_delete():
    store = _store([0.0])
    store.set("k", 1, 60)
    store.set("k", 2, 60)
    assert store.get("k") == 2

    assert store.delete("k") is True
    assert store.delete("k") is False
    assert store.get("k") is None


def test_sweep_and_stats():
    clock = [0.0]
    store = _store(clock)
    store.set("short", "a", 5)
    store.set("long", "b", 500)

    clock[0] = 10.0
    assert store.stats() == {"total": 2, "expired": 1, "active": 1}

    assert store.sweep() == 1
    assert store.sweep() == 0
    assert store.stats() == {"total": 1, "expired": 0, "active": 1}


def test_flush_persists_and_reload_skips_expired(tmp_path):
    path = tmp_path / "cache.json"
    clock = [0.0]
    store = _store(clock, path, flush_max_dirty_writes=100)
    store.set("a", {"v": 1}, 100)
    store.set("b", {"v": 2}, 5)
    assert not path.exists()

    store.flush()
    doc = json.loads(path.read_text(encoding="utf-8"))
    assert doc["schema"] == 1
    assert set(doc["entries"]) == {"a", "b"}

    clock[0] = 50.0
    reloaded = _store(clock, path)
    assert reloaded.get("a") == {"v": 1}
    assert reloaded.stats()["total"] == 1


def test_flush_batches_by_dirty_writes(tmp_path):
    path = tmp_path / "cache.json"
    store = _store([0.0], path, flush_max_dirty_writes=2, flush_max_seconds=3600)
    store.set("a", 1, 60)
    assert not path.exists()
    store.set("b", 2, 60)
    assert path.exists()
    assert store.metrics_snapshot()["flush_writes"] == 1


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text("{not json", encoding="utf-8")
    store = _store([0.0], path)
    assert store.get("a") is None
    assert store.set("a", 1, 60) is True
    assert store.get("a") == 1


def test_schema_mismatch_starts_empty(tmp_path):
    path = tmp_path / "cache.json"
    path.write_text(json.dumps({"schema": 99, "entries": {"a": {"payload": "1", "expires_at": 1e12, "created_at": 0}}}))
    assert _store([0.0], path).get("a") is None


def test_sweeper_start_stop_idempotent():
    store = _store([0.0])
    sweeper = cs.CacheSweeper(store, interval_seconds=3600)
    sweeper.start()
    sweeper.start()
    assert sweeper.running is True
    sweeper.stop()
    sweeper.stop()
    assert sweeper.running is False
