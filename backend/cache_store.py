from __future__ import annotations

"""
backend/cache_store.py

Cache persistente de resultados (fingerprint -> payload) con expiración explícita.

🧠 Principios
-------------
1) Fail-safe:
   - get() nunca lanza: error o expirado => miss.
   - set()/delete() devuelven bool: un fallo se loguea y el caller sigue sin cache.

2) Expiración:
   - Lazy: una entrada con now >= expires_at es lógicamente inexistente aunque siga en memoria.
   - Física: sweep() elimina expiradas (idempotente). CacheSweeper lo ejecuta periódicamente.

3) Thread safe:
   - RLock sobre el mapa de entradas. Escrituras = upsert completo (last-writer-wins).
   - Los payloads se guardan serializados (JSON): nadie puede mutarlos in-place.

4) Persistencia (opcional, path=None => solo memoria):
   - Fichero JSON con schema versionado; schema mismatch o corrupto => cache vacío.
   - Flush batching (N escrituras o X segundos) + escritura atómica (tmp + fsync + replace).

Fingerprint
-----------
fingerprint(kind, params) = "<kind>:<sha256>" sobre JSON canónico (sort_keys, separadores
compactos). El orden de claves de los mapas NO cambia el resultado.
"""

import atexit
import hashlib
import json
import os
import tempfile
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from backend import logger as logger

_SCHEMA_VERSION: Final[int] = 1


def _dbg(msg: object) -> None:
    logger.debug_ctx("CACHE", msg)


def _canonical_json(value: object) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def fingerprint(kind: str, params: Mapping[str, object]) -> str:
    """Clave determinista para (kind, params)."""
    digest = hashlib.sha256(_canonical_json(dict(params)).encode("utf-8")).hexdigest()
    return f"{kind}:{digest}"


@dataclass(frozen=True, slots=True)
class CacheEntry:
    fingerprint: str
    payload_json: str
    expires_at: float
    created_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class CacheStore:
    """
    Cache clave/valor con TTL por entrada.

    `clock` devuelve epoch seconds (inyectable en tests).
    """

    def __init__(
        self,
        path: Path | None = None,
        *,
        default_ttl_seconds: float = 60 * 60 * 24,
        flush_max_dirty_writes: int = 25,
        flush_max_seconds: float = 8.0,
        clock: Callable[[], float] = time.time,
        register_atexit: bool = False,
    ) -> None:
        self._path = path
        self._default_ttl = max(1.0, float(default_ttl_seconds))
        self._flush_max_dirty_writes = max(1, int(flush_max_dirty_writes))
        self._flush_max_seconds = max(0.1, float(flush_max_seconds))
        self._clock = clock

        self._lock = threading.RLock()
        self._entries: dict[str, CacheEntry] | None = None

        self._dirty_writes = 0
        self._last_flush_monotonic = time.monotonic()

        self._metrics_lock = threading.Lock()
        self._metrics: dict[str, int] = {
            "hits": 0,
            "misses": 0,
            "expired_hits": 0,
            "writes": 0,
            "write_failures": 0,
            "deletes": 0,
            "swept": 0,
            "flush_writes": 0,
            "flush_failures": 0,
        }

        if register_atexit and path is not None:
            atexit.register(self.close)

    # ------------------------------------------------------------------
    # métricas
    # ------------------------------------------------------------------

    def _m_inc(self, key: str, delta: int = 1) -> None:
        with self._metrics_lock:
            self._metrics[key] = self._metrics.get(key, 0) + int(delta)

    def metrics_snapshot(self) -> dict[str, int]:
        with self._metrics_lock:
            return dict(self._metrics)

    # ------------------------------------------------------------------
    # carga / guardado
    # ------------------------------------------------------------------

    def _maybe_quarantine_corrupt_file(self) -> None:
        """En DEBUG renombra el fichero corrupto para inspección."""
        if self._path is None or not logger.is_debug_mode():
            return
        try:
            bad_path = self._path.with_name(f"{self._path.name}.corrupt.{int(time.time())}")
            os.replace(str(self._path), str(bad_path))
            _dbg(f"Quarantined corrupt cache file -> {bad_path.name}")
        except OSError:
            return

    def _load_unlocked(self) -> dict[str, CacheEntry]:
        if self._entries is not None:
            return self._entries

        self._entries = {}
        if self._path is None or not self._path.exists():
            return self._entries

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning(f"[CACHE] unreadable cache file {self._path}: {exc!r}; starting empty")
            self._maybe_quarantine_corrupt_file()
            return self._entries

        if not isinstance(raw, Mapping) or raw.get("schema") != _SCHEMA_VERSION:
            _dbg(f"cache schema mismatch -> recreate (found={raw.get('schema') if isinstance(raw, Mapping) else None!r})")
            return self._entries

        entries_obj = raw.get("entries")
        if not isinstance(entries_obj, Mapping):
            return self._entries

        now = self._clock()
        for fp, v in entries_obj.items():
            if not isinstance(fp, str) or not isinstance(v, Mapping):
                continue
            payload_json = v.get("payload")
            expires_at = v.get("expires_at")
            created_at = v.get("created_at")
            if not isinstance(payload_json, str):
                continue
            if not isinstance(expires_at, (int, float)) or not isinstance(created_at, (int, float)):
                continue
            if now >= float(expires_at):
                continue
            self._entries[fp] = CacheEntry(
                fingerprint=fp,
                payload_json=payload_json,
                expires_at=float(expires_at),
                created_at=float(created_at),
            )

        _dbg(f"cache loaded | entries={len(self._entries)} path={self._path}")
        return self._entries

    def _save_atomic_unlocked(self, entries: Mapping[str, CacheEntry]) -> None:
        """
        Escritura atómica:
        - temp file en el mismo directorio
        - fsync (best-effort)
        - replace
        """
        assert self._path is not None
        dirpath = self._path.parent
        dirpath.mkdir(parents=True, exist_ok=True)

        doc = {
            "schema": _SCHEMA_VERSION,
            "entries": {
                fp: {"payload": e.payload_json, "expires_at": e.expires_at, "created_at": e.created_at}
                for fp, e in entries.items()
            },
        }

        temp_name: str | None = None
        try:
            with tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(dirpath)) as tf:
                json.dump(doc, tf, ensure_ascii=False)
                tf.flush()
                try:
                    os.fsync(tf.fileno())
                except OSError:
                    pass
                temp_name = tf.name

            os.replace(temp_name, str(self._path))
        finally:
            if temp_name and os.path.exists(temp_name) and temp_name != str(self._path):
                try:
                    os.remove(temp_name)
                except OSError:
                    pass

    def _maybe_flush_unlocked(self, *, force: bool) -> None:
        if self._path is None or self._entries is None:
            return
        if self._dirty_writes <= 0 and not force:
            return

        now_mono = time.monotonic()
        should_flush = force
        if not should_flush:
            if self._dirty_writes >= self._flush_max_dirty_writes:
                should_flush = True
            elif (now_mono - self._last_flush_monotonic) >= self._flush_max_seconds:
                should_flush = True
        if not should_flush:
            return

        try:
            self._save_atomic_unlocked(self._entries)
        except (OSError, TypeError, ValueError) as exc:
            self._m_inc("flush_failures", 1)
            logger.warning(f"[CACHE] flush failed ({self._path}): {exc!r}")
            return

        self._dirty_writes = 0
        self._last_flush_monotonic = now_mono
        self._m_inc("flush_writes", 1)

    def flush(self) -> None:
        """Flush explícito (si hay escrituras pendientes)."""
        with self._lock:
            if self._dirty_writes > 0:
                self._maybe_flush_unlocked(force=True)

    def close(self) -> None:
        try:
            self.flush()
        except Exception as exc:
            logger.warning(f"[CACHE] close flush failed: {exc!r}")

    # ------------------------------------------------------------------
    # API pública
    # ------------------------------------------------------------------

    def get(self, fp: str) -> object | None:
        """Payload si existe y no ha expirado; None en cualquier otro caso."""
        try:
            with self._lock:
                entry = self._load_unlocked().get(fp)
            if entry is None:
                self._m_inc("misses", 1)
                _dbg(f"miss {fp}")
                return None
            if entry.is_expired(self._clock()):
                self._m_inc("expired_hits", 1)
                self._m_inc("misses", 1)
                _dbg(f"expired {fp}")
                return None
            payload = json.loads(entry.payload_json)
        except Exception as exc:
            self._m_inc("misses", 1)
            logger.error(f"[CACHE] get error for {fp}: {exc!r}")
            return None

        self._m_inc("hits", 1)
        _dbg(f"hit {fp}")
        return payload

    def set(self, fp: str, payload: object, ttl_seconds: float | None = None) -> bool:
        """Upsert. False si el payload no es serializable o falla la escritura."""
        try:
            ttl = self._default_ttl if ttl_seconds is None else float(ttl_seconds)
            if ttl <= 0:
                raise ValueError(f"ttl must be > 0 (got {ttl_seconds!r})")

            payload_json = json.dumps(payload, ensure_ascii=False, allow_nan=False)
            now = self._clock()
            entry = CacheEntry(fingerprint=fp, payload_json=payload_json, expires_at=now + ttl, created_at=now)

            with self._lock:
                self._load_unlocked()[fp] = entry
                self._dirty_writes += 1
                self._maybe_flush_unlocked(force=False)
        except Exception as exc:
            self._m_inc("write_failures", 1)
            logger.error(f"[CACHE] set error for {fp}: {exc!r}")
            return False

        self._m_inc("writes", 1)
        _dbg(f"set {fp} ttl={ttl:g}s")
        return True

    def delete(self, fp: str) -> bool:
        """Invalidación explícita. True si existía."""
        try:
            with self._lock:
                existed = self._load_unlocked().pop(fp, None) is not None
                if existed:
                    self._dirty_writes += 1
                    self._maybe_flush_unlocked(force=False)
        except Exception as exc:
            logger.error(f"[CACHE] delete error for {fp}: {exc!r}")
            return False

        if existed:
            self._m_inc("deletes", 1)
        return existed

    def sweep(self) -> int:
        """Elimina físicamente las entradas expiradas. Devuelve cuántas se borraron."""
        try:
            now = self._clock()
            with self._lock:
                entries = self._load_unlocked()
                expired = [fp for fp, e in entries.items() if e.is_expired(now)]
                for fp in expired:
                    entries.pop(fp, None)
                if expired:
                    self._dirty_writes += 1
                    self._maybe_flush_unlocked(force=True)
        except Exception as exc:
            logger.error(f"[CACHE] sweep error: {exc!r}")
            return 0

        if expired:
            self._m_inc("swept", len(expired))
        logger.info(f"[CACHE] swept {len(expired)} expired entries")
        return len(expired)

    def stats(self) -> dict[str, int]:
        """{total, expired, active} (expired = aún no barridas)."""
        try:
            now = self._clock()
            with self._lock:
                entries = list(self._load_unlocked().values())
        except Exception as exc:
            logger.error(f"[CACHE] stats error: {exc!r}")
            return {"total": 0, "expired": 0, "active": 0}

        expired = sum(1 for e in entries if e.is_expired(now))
        return {"total": len(entries), "expired": expired, "active": len(entries) - expired}


class CacheSweeper:
    """
    Hilo daemon que ejecuta `store.sweep()` cada `interval_seconds`.
    start()/stop() idempotentes.
    """

    def __init__(self, store: CacheStore, *, interval_seconds: float) -> None:
        self._store = store
        self._interval = max(1.0, float(interval_seconds))
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        t = self._thread
        return t is not None and t.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self._store.sweep()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._stop.clear()
            self._thread = threading.Thread(target=self._run, name="cache-sweeper", daemon=True)
            self._thread.start()
            _dbg(f"sweeper started (interval={self._interval:g}s)")

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            t = self._thread
            if t is None:
                return
            self._stop.set()
            t.join(timeout=timeout)
            self._thread = None
            _dbg("sweeper stopped")
