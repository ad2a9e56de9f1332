# logger de la API + fichero opcional por proceso
from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path

from server.api.settings import Settings, _env_bool, _env_str

API_LOGGER_NAME = "movies_api"

_FILE_HANDLER_TAG = "_movies_api_file_handler"
_LOGGER_FILE_PATH_SENTINEL: object = object()
_LOGGER_FILE_PATH_CACHED: Path | None | object = _LOGGER_FILE_PATH_SENTINEL

PROJECT_DIR = Path(__file__).resolve().parents[2]


def _sanitize_filename_component(value: str) -> str:
    s = (value or "").strip()
    if not s:
        return ""
    return "".join(ch if (ch.isalnum() or ch in ("-", "_", ".")) else "_" for ch in s).strip("._-")


def _resolve_dir(raw: str, *, base: Path) -> Path:
    p = Path(raw)
    return p if p.is_absolute() else (base / p)


def _build_logger_file_path() -> Path | None:
    """
    Path del log de la API, congelado en la primera llamada (un fichero por proceso).

    LOGGER_FILE_PATH explícito > LOGGER_FILE_DIR/<prefix>_<ts>[_pid].log
    """
    global _LOGGER_FILE_PATH_CACHED

    if _LOGGER_FILE_PATH_CACHED is not _LOGGER_FILE_PATH_SENTINEL:
        return _LOGGER_FILE_PATH_CACHED  # type: ignore[return-value]

    if not _env_bool("LOGGER_FILE_ENABLED", False):
        _LOGGER_FILE_PATH_CACHED = None
        return None

    raw_path = _env_str("LOGGER_FILE_PATH", "")
    if raw_path:
        _LOGGER_FILE_PATH_CACHED = _resolve_dir(raw_path, base=PROJECT_DIR).resolve()
        return _LOGGER_FILE_PATH_CACHED

    log_dir = _resolve_dir(_env_str("LOGGER_FILE_DIR", "logs"), base=PROJECT_DIR)
    prefix = _sanitize_filename_component(_env_str("LOGGER_FILE_PREFIX", "api")) or "api"
    ts = datetime.now().strftime(_env_str("LOGGER_FILE_TIMESTAMP_FORMAT", "%Y-%m-%d_%H-%M-%S"))
    pid_part = f"_{os.getpid()}" if _env_bool("LOGGER_FILE_INCLUDE_PID", True) else ""

    _LOGGER_FILE_PATH_CACHED = (log_dir / f"{prefix}_{ts}{pid_part}.log").resolve()
    return _LOGGER_FILE_PATH_CACHED


def _has_our_file_handler(root: logging.Logger) -> bool:
    return any(getattr(h, _FILE_HANDLER_TAG, False) for h in root.handlers)


def _ensure_file_handler(root: logging.Logger, *, level: str) -> None:
    path = _build_logger_file_path()
    if path is None:
        return

    if _has_our_file_handler(root):
        for handler in root.handlers:
            if getattr(handler, _FILE_HANDLER_TAG, False):
                handler.setLevel(level)
        return

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8", delay=True)
    except OSError:
        return

    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    setattr(handler, _FILE_HANDLER_TAG, True)
    root.addHandler(handler)


def configure_logging(settings: Settings) -> logging.Logger:
    """
    Configuración mínima:
    - Respetamos handlers/format de quien ejecute (uvicorn, gunicorn, etc.).
    - Ajustamos nivel global según settings.
    """
    root = logging.getLogger()
    root.setLevel(settings.log_level)
    _ensure_file_handler(root, level=settings.log_level)

    logger = logging.getLogger(API_LOGGER_NAME)
    logger.setLevel(settings.log_level)
    return logger
