from __future__ import annotations

"""
backend/logger.py

Fachada de logging del engine.

Uso: `from backend import logger as logger` y luego
logger.info / logger.warning / logger.error / logger.debug_ctx("CACHE", ...).

Política
--------
- SILENT_MODE=True: info/warning se suprimen salvo always=True; error() siempre emite.
- DEBUG_MODE=True: debug_ctx emite "[TAG][DEBUG] ..." (por progress() si además SILENT_MODE).
- LOG_LEVEL explícito gana a DEBUG_MODE.
- Un fallo de logging nunca rompe una resolución.

La configuración se lee de `backend.config` vía sys.modules (sin importarlo: evita ciclos,
config_base importa este módulo). Fichero opcional: LOGGER_FILE_ENABLED + LOGGER_FILE_PATH
(la variable de entorno LOGGER_FILE_PATH tiene prioridad).
"""

import logging
import os
import sys
import threading
from types import ModuleType, TracebackType
from typing import Final, Mapping, TypedDict

from typing_extensions import TypeAlias, Unpack

_ExcInfoTuple: TypeAlias = tuple[type[BaseException], BaseException, TracebackType | None]
ExcInfo: TypeAlias = bool | _ExcInfoTuple | BaseException | None


class LogKwargs(TypedDict, total=False):
    exc_info: ExcInfo
    stack_info: bool
    stacklevel: int
    extra: Mapping[str, object] | None


LOGGER_NAME: Final[str] = "movies_engine"
_FORMAT: Final[str] = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_FILE_HANDLER_TAG: Final[str] = "_movies_engine_file_handler"
_NOISY_LOGGERS: Final[tuple[str, ...]] = ("urllib3", "urllib3.connectionpool", "requests")
_DEFAULT_LOG_LINE_MAX_CHARS: Final[int] = 500

_LEVELS: Final[dict[str, int]] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
    "FATAL": logging.CRITICAL,
}

_setup_lock = threading.Lock()
_engine_logger: logging.Logger | None = None


# ============================================================================
# Lectura de config (best-effort)
# ============================================================================


def _cfg() -> ModuleType | None:
    mod = sys.modules.get("backend.config")
    return mod if isinstance(mod, ModuleType) else None


def _cfg_bool(name: str, default: bool = False) -> bool:
    cfg = _cfg()
    return bool(getattr(cfg, name, default)) if cfg is not None else default


def _cfg_str(name: str) -> str | None:
    cfg = _cfg()
    value = getattr(cfg, name, None) if cfg is not None else None
    text = str(value).strip() if value is not None else ""
    return text or None


def is_silent_mode() -> bool:
    return _cfg_bool("SILENT_MODE")


def is_debug_mode() -> bool:
    return _cfg_bool("DEBUG_MODE")


def _resolve_level_from_config() -> int:
    """LOG_LEVEL válido > DEBUG_MODE > INFO."""
    explicit = _LEVELS.get((_cfg_str("LOG_LEVEL") or "").upper())
    if explicit is not None:
        return explicit
    return logging.DEBUG if is_debug_mode() else logging.INFO


# ============================================================================
# Setup idempotente
# ============================================================================


def _log_file_path() -> str | None:
    if not _cfg_bool("LOGGER_FILE_ENABLED"):
        return None
    return (os.getenv("LOGGER_FILE_PATH") or "").strip() or _cfg_str("LOGGER_FILE_PATH")


def _sync_file_handler(root: logging.Logger, level: int) -> None:
    path = _log_file_path()
    if not path:
        return

    for handler in root.handlers:
        if getattr(handler, _FILE_HANDLER_TAG, False):
            handler.setLevel(level)
            return

    try:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        fh = logging.FileHandler(path, mode="a", encoding="utf-8", delay=True)
    except OSError:
        return
    fh.setLevel(level)
    fh.setFormatter(logging.Formatter(_FORMAT))
    setattr(fh, _FILE_HANDLER_TAG, True)
    root.addHandler(fh)


def _engine() -> logging.Logger:
    """Logger del engine; re-aplica nivel y handlers en cada llamada (la config puede cambiar)."""
    global _engine_logger

    level = _resolve_level_from_config()
    root = logging.getLogger()

    with _setup_lock:
        if _engine_logger is None:
            if root.handlers:
                root.setLevel(level)
            else:
                logging.basicConfig(level=level, format=_FORMAT)
            _engine_logger = logging.getLogger(LOGGER_NAME)

        _engine_logger.setLevel(level)
        if not _cfg_bool("HTTP_DEBUG"):
            for name in _NOISY_LOGGERS:
                logging.getLogger(name).setLevel(logging.WARNING)
        _sync_file_handler(root, level)
        return _engine_logger


def _should_log(*, always: bool = False) -> bool:
    return always or not is_silent_mode()


# ============================================================================
# API
# ============================================================================


def progress(message: str) -> None:
    """Línea siempre visible por stdout, sin formato de logging."""
    try:
        sys.stdout.write(f"{message}\n")
        sys.stdout.flush()
    except (OSError, ValueError):
        return


def _emit(level: int, msg: str, args: tuple[object, ...], kwargs: LogKwargs) -> None:
    try:
        _engine().log(level, msg, *args, **kwargs)
    except Exception:
        # Último recurso: el mensaje no se pierde aunque falle el handler.
        progress(msg)


def info(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    if _should_log(always=always):
        _emit(logging.INFO, msg, args, kwargs)


def warning(msg: str, *args: object, always: bool = False, **kwargs: Unpack[LogKwargs]) -> None:
    if _should_log(always=always):
        _emit(logging.WARNING, msg, args, kwargs)


def error(msg: str, *args: object, **kwargs: Unpack[LogKwargs]) -> None:
    _emit(logging.ERROR, msg, args, kwargs)


def truncate_line(text: str, max_chars: int | None = None) -> str:
    """Recorta payloads largos del upstream (HTML de error, JSON enorme) para una sola línea."""
    limit = max_chars if isinstance(max_chars, int) and max_chars > 0 else _DEFAULT_LOG_LINE_MAX_CHARS
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 12)] + " …(truncated)"


def debug_ctx(tag: str, msg: object) -> None:
    """
    Traza "[TAG][DEBUG] msg" solo con DEBUG_MODE.

    Con SILENT_MODE va por progress() (stdout) en lugar del logger.
    """
    if not is_debug_mode():
        return

    line = f"[{(tag or 'DEBUG').strip().upper()}][DEBUG] {truncate_line(str(msg))}"
    if is_silent_mode():
        progress(line)
    else:
        info(line)
