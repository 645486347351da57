"""Logging setup for the ``git-lab`` command.

Modules log through ``logging.getLogger(__name__)``, so every logger in the
package is a child of ``labmr`` and is routed by the handlers installed here.
The console shows short records at the chosen level; the log file keeps
everything from DEBUG up with timestamps.
"""

from __future__ import annotations

import logging as py_logging
import sys
from pathlib import Path
from typing import TextIO

ROOT_LOGGER = "labmr"
DEFAULT_LEVEL = "WARN"
LOG_LEVELS = {
    "DEBUG": py_logging.DEBUG,
    "INFO": py_logging.INFO,
    "WARN": py_logging.WARNING,
    "ERROR": py_logging.ERROR,
}
DEFAULT_LOG_PATH = Path("~/.config/labmr/logs/labmr.log")
CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"


def default_log_path() -> Path:
    try:
        return DEFAULT_LOG_PATH.expanduser().resolve()
    except RuntimeError:
        # No home directory, e.g. a stripped-down container user.
        return (Path.cwd() / ".labmr" / "labmr.log").resolve()


def normalize_level(level: str) -> str:
    normalized = level.strip().upper()
    return "WARN" if normalized == "WARNING" else normalized


def is_valid_level(level: str | None) -> bool:
    return bool(level) and normalize_level(level) in LOG_LEVELS


def effective_level(*candidates: str | None) -> str:
    """First valid level among ``candidates`` (highest priority first)."""
    for candidate in candidates:
        if is_valid_level(candidate):
            return normalize_level(candidate)
    return DEFAULT_LEVEL


def _file_handler(log_file: str | Path) -> py_logging.Handler | None:
    path = Path(log_file).expanduser()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = py_logging.FileHandler(path, encoding="utf-8")
    except OSError:
        return None
    handler.setLevel(py_logging.DEBUG)
    handler.setFormatter(py_logging.Formatter(FILE_FORMAT))
    return handler


def configure_logging(
    level: str | None = DEFAULT_LEVEL,
    stream: TextIO | None = None,
    *,
    log_file: str | Path | None = None,
) -> py_logging.Logger:
    """Install console and file handlers on the ``labmr`` logger.

    Calling it again replaces the previous handlers, which lets the CLI start
    with defaults and reconfigure once settings have been loaded.
    """
    console_level = LOG_LEVELS[effective_level(level)]

    logger = py_logging.getLogger(ROOT_LOGGER)
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    console = py_logging.StreamHandler(stream or sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(py_logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console)

    file_handler = _file_handler(log_file) if log_file else None
    if file_handler is not None:
        logger.addHandler(file_handler)

    logger.setLevel(py_logging.DEBUG if file_handler is not None else console_level)
    logger.propagate = False
    return logger
