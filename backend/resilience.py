from __future__ import annotations

"""
backend/resilience.py

Primitivas de resiliencia para el cliente del catálogo upstream:

- CircuitBreaker por endpoint (search / detail):
    - CLOSED (normal)
    - OPEN (rechaza llamadas durante `open_seconds`)
    - HALF_OPEN (deja pasar N llamadas de prueba; ok => CLOSED, fallo => OPEN)
- SingleFlight: coalescing de llamadas concurrentes con la misma clave
  (N peticiones simultáneas por el mismo id => 1 llamada upstream).

Thread-safe. No impone logging: el caller usa backend/logger.py.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


class CircuitOpenError(RuntimeError):
    """La llamada se rechazó sin ejecutarse porque el breaker está abierto."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"circuit open for '{key}' ({reason})")
        self.key = key
        self.reason = reason


@dataclass
class CircuitState:
    failures: int = 0
    opened_at: float = 0.0
    state: str = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
    last_error: str = ""


class CircuitBreaker:
    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        open_seconds: float = 20.0,
        half_open_max_calls: int = 1,
    ) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, CircuitState] = {}
        self._failure_threshold = max(1, int(failure_threshold))
        self._open_seconds = max(0.1, float(open_seconds))
        self._half_open_max_calls = max(1, int(half_open_max_calls))
        self._half_open_inflight: dict[str, int] = {}

    def allow(self, key: str) -> tuple[bool, str]:
        """(allowed, reason)."""
        now = time.monotonic()
        with self._lock:
            st = self._states.setdefault(key, CircuitState())

            if st.state == "CLOSED":
                return True, "closed"

            if st.state == "OPEN":
                if (now - st.opened_at) < self._open_seconds:
                    return False, "open"
                st.state = "HALF_OPEN"
                self._half_open_inflight[key] = 0

            inflight = self._half_open_inflight.get(key, 0)
            if inflight >= self._half_open_max_calls:
                return False, "half_open:quota_reached"
            self._half_open_inflight[key] = inflight + 1
            return True, "half_open:trial"

    def on_success(self, key: str) -> None:
        with self._lock:
            self._states[key] = CircuitState()
            self._half_open_inflight.pop(key, None)

    def on_failure(self, key: str, *, error: str) -> None:
        now = time.monotonic()
        with self._lock:
            st = self._states.setdefault(key, CircuitState())
            st.failures += 1
            st.last_error = str(error)[:500]

            if st.state == "HALF_OPEN" or st.failures >= self._failure_threshold:
                st.state = "OPEN"
                st.opened_at = now
                self._half_open_inflight.pop(key, None)

    def call(self, key: str, fn: Callable[[], T], *, is_failure: Callable[[BaseException], bool]) -> T:
        """
        Ejecuta fn() bajo el breaker.

        - Breaker abierto => CircuitOpenError (fn no se ejecuta).
        - Excepción con is_failure(exc)=True => cuenta como fallo y se relanza.
        - Otras excepciones (p.ej. "not found") cuentan como respuesta sana.
        """
        allowed, reason = self.allow(key)
        if not allowed:
            raise CircuitOpenError(key, reason)

        try:
            out = fn()
        except Exception as exc:
            if is_failure(exc):
                self.on_failure(key, error=repr(exc))
            else:
                self.on_success(key)
            raise

        self.on_success(key)
        return out

    def snapshot(self) -> dict[str, str]:
        """{key: state} para métricas/diagnóstico."""
        with self._lock:
            return {k: st.state for k, st in self._states.items()}

    def debug_state(self, key: str) -> CircuitState | None:
        with self._lock:
            st = self._states.get(key)
            return None if st is None else CircuitState(**st.__dict__)


# ============================================================
# Single-flight
# ============================================================


@dataclass
class _Flight(Generic[T]):
    done: threading.Event = field(default_factory=threading.Event)
    result: T | None = None
    error: BaseException | None = None
    waiters: int = 0


class SingleFlight(Generic[T]):
    """
    Deduplica llamadas concurrentes por clave.

    El primer caller (leader) ejecuta fn(); los que llegan mientras está en vuelo
    esperan y reciben el mismo resultado (o la misma excepción).
    Al terminar, la clave se libera: la siguiente llamada vuelve a ejecutar fn().
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._flights: dict[str, _Flight[T]] = {}
        self._coalesced = 0

    @property
    def coalesced_calls(self) -> int:
        with self._lock:
            return self._coalesced

    def do(self, key: str, fn: Callable[[], T]) -> T:
        with self._lock:
            flight = self._flights.get(key)
            leader = flight is None
            if flight is None:
                flight = _Flight()
                self._flights[key] = flight
            else:
                flight.waiters += 1
                self._coalesced += 1

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.result  # type: ignore[return-value]

        try:
            flight.result = fn()
            return flight.result
        except BaseException as exc:
            flight.error = exc
            raise
        finally:
            with self._lock:
                self._flights.pop(key, None)
            flight.done.set()
