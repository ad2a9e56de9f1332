from __future__ import annotations

"""
backend/errors.py

Taxonomía de errores del engine.

- NotFound:            ningún tier (store/upstream) tiene el id.
- UpstreamError:       fallo de transporte/timeout/no-2xx/JSON inválido del catálogo
                       (nivel cliente, por sub-llamada).
- UpstreamUnavailable: el engine no pudo ensamblar datos porque el catálogo falló.
- PersistenceDegraded: dato resuelto pero no persistido. NUNCA se propaga al caller:
                       se construye, se loguea y se descarta.
- InternalFailure:     fallo inesperado de store/cache fuera de los caminos best-effort.
- InvalidUpdate:       update_movie con campos no editables o que dejan el record inválido.
- RecordStoreError:    el record store no puede escribir un record.
  - InvalidRecord:     el record no pasa la validación del store.
"""


class EngineError(Exception):
    """Base de todos los errores del engine."""


class NotFound(EngineError):
    def __init__(self, external_id: str, message: str = "Movie not found") -> None:
        super().__init__(f"{message}: {external_id}")
        self.external_id = external_id


class UpstreamError(EngineError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamUnavailable(EngineError):
    pass


class PersistenceDegraded(EngineError):
    def __init__(self, external_id: str, reason: str) -> None:
        super().__init__(f"persistence degraded for {external_id}: {reason}")
        self.external_id = external_id
        self.reason = reason


class InternalFailure(EngineError):
    pass


class InvalidUpdate(EngineError):
    """Actualización rechazada: sin campos editables o record resultante inválido."""


class RecordStoreError(EngineError):
    pass


class InvalidRecord(RecordStoreError):
    """El record no pasa la validación del store (no es un fallo de escritura)."""
