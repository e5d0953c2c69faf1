"""Logging setup for the memory engine.

Every record carries the active project id (``%(project)s``), bound with
:func:`project_context` by the CLI and the tool layer.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Iterator, Literal, Optional

_ROOT_NAME = "cwa"
_CONSOLE_FORMAT = "%(asctime)s %(levelname).1s [%(project)s] %(name)s: %(message)s"
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(project)s | %(name)s | %(message)s"
_CONSOLE_DATEFMT = "%H:%M:%S"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"
_NO_PROJECT = "-"

# HTTP and vector clients log every request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "qdrant_client", "urllib3", "faiss")

_LEVEL_COLOURS = {
    logging.DEBUG: "36",
    logging.INFO: "32",
    logging.WARNING: "33",
    logging.ERROR: "31",
    logging.CRITICAL: "35",
}

_current_project: ContextVar[str] = ContextVar("cwa_log_project", default=_NO_PROJECT)
_configured = False
_session_log: Optional[Path] = None


@contextmanager
def project_context(project_id: Optional[str]) -> Iterator[None]:
    """Tag log records emitted inside the block with ``project_id``."""
    token = _current_project.set(project_id or _NO_PROJECT)
    try:
        yield
    finally:
        _current_project.reset(token)


class _ProjectFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "project"):
            record.project = _current_project.get()
        return True


class _ConsoleFormatter(logging.Formatter):
    def __init__(self, *, colour: bool) -> None:
        super().__init__(_CONSOLE_FORMAT, datefmt=_CONSOLE_DATEFMT)
        self._colour = colour

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        code = _LEVEL_COLOURS.get(record.levelno) if self._colour else None
        return f"\033[{code}m{text}\033[0m" if code else text


def setup_logging(
    level: str = "INFO",
    *,
    log_dir: str | Path | Literal[False] | None = None,
) -> None:
    """Install console and session-file handlers once; later calls only set the level.

    ``log_dir=None`` reads ``LOG_DIR`` (default ``logs``); ``False`` disables
    the session file.
    """
    global _configured, _session_log

    numeric_level = _coerce_level(level)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    if _configured:
        return

    project_filter = _ProjectFilter()
    console = logging.StreamHandler()
    console.setFormatter(_ConsoleFormatter(colour=_is_tty(console.stream)))
    console.addFilter(project_filter)
    handlers: list[logging.Handler] = [console]

    _session_log = None
    directory = _log_directory(log_dir)
    if directory is not None:
        directory.mkdir(parents=True, exist_ok=True)
        _session_log = directory / f"cwa_{datetime.now():%Y%m%d_%H%M%S}.log"
        session = logging.FileHandler(_session_log, encoding="utf-8")
        session.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        session.addFilter(project_filter)
        handlers.append(session)

    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
    _configured = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger in the ``cwa`` namespace."""
    if not name or name == _ROOT_NAME or name.startswith(f"{_ROOT_NAME}."):
        return logging.getLogger(name or _ROOT_NAME)
    return logging.getLogger(f"{_ROOT_NAME}.{name}")


def session_log_path() -> Optional[Path]:
    return _session_log


def _log_directory(log_dir: str | Path | Literal[False] | None) -> Optional[Path]:
    if log_dir is False:
        return None
    if log_dir is None:
        return Path(os.getenv("LOG_DIR") or "logs")
    return Path(log_dir)


def _coerce_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    name = str(level).strip().upper()
    if name.isdigit():
        return int(name)
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def _is_tty(stream) -> bool:
    isatty = getattr(stream, "isatty", None)
    if isatty is None or sys.platform == "win32":
        return False
    try:
        return bool(isatty())
    except ValueError:
        # closed stream
        return False
