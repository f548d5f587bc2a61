"""Structured JSON logging for tessera.

Writes JSONL to .tessera/tessera.log with rotation (5MB, 3 backups).
"""

from __future__ import annotations

import json
import logging
import os
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOG_FILENAME = "tessera.log"
_setup_lock = threading.Lock()
_MAX_BYTES = 5 * 1024 * 1024  # 5MB
_BACKUP_COUNT = 3

# Attributes copied from LogRecord.extra into the JSON entry, keyed by output name.
_EXTRA_FIELDS = {
    "tool": "tool",
    "args_data": "args",
    "duration_ms": "duration_ms",
    "error": "error",
    "file": "file",
    "progress": "progress",
}


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for attr, key in _EXTRA_FIELDS.items():
            if hasattr(record, attr):
                entry[key] = getattr(record, attr)
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = str(record.exc_info[1])
        return json.dumps(entry, default=str)


def _file_handlers(logger: logging.Logger) -> list[RotatingFileHandler]:
    return [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]


def setup_logging(tessera_dir: Path, *, level: int = logging.INFO) -> logging.Logger:
    """Attach a rotating JSONL handler for ``tessera_dir`` to the ``tessera`` logger.

    Idempotent: calling again with the same directory returns the logger
    unchanged; calling with a different directory swaps the handler.
    """
    logger = logging.getLogger("tessera")
    log_path = tessera_dir / LOG_FILENAME
    target_filename = os.path.abspath(str(log_path))

    with _setup_lock:
        current = _file_handlers(logger)
        if any(h.baseFilename == target_filename for h in current):
            return logger
        for h in current:
            logger.removeHandler(h)
            h.close()

        handler = RotatingFileHandler(
            str(log_path),
            maxBytes=_MAX_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        )
        handler.setFormatter(_JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(level)
    return logger


def teardown_logging() -> None:
    """Close and detach every file handler installed by :func:`setup_logging`."""
    logger = logging.getLogger("tessera")
    with _setup_lock:
        for h in _file_handlers(logger):
            logger.removeHandler(h)
            h.close()
