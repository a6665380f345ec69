"""Structured JSON logging for bugtrail.

One JSON object per line in .bugtrail/bugtrail.log, rotated at 5MB with
3 backups. Request handlers attach ``route``, ``params``, ``duration_ms``
and ``error`` through ``extra=``; any of them may be absent.

The level defaults to INFO and can be overridden with BUGTRAIL_LOG_LEVEL
(a level name such as ``DEBUG``).
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOG_FILENAME = "bugtrail.log"
LOG_LEVEL_ENV = "BUGTRAIL_LOG_LEVEL"
_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3
_REQUEST_FIELDS = ("route", "params", "duration_ms", "error")

_lock = threading.Lock()


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, UTC)
        entry: dict[str, Any] = {
            "ts": created.isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update({name: getattr(record, name) for name in _REQUEST_FIELDS if hasattr(record, name)})
        if record.exc_info and record.exc_info[1] is not None:
            exc = record.exc_info[1]
            entry["exc_type"] = type(exc).__name__
            entry["exception"] = str(exc)
        return json.dumps(entry, default=str)


def _resolve_level(level: int | None) -> int:
    if level is not None:
        return level
    name = os.getenv(LOG_LEVEL_ENV, "").strip().upper()
    resolved = logging.getLevelName(name) if name else logging.INFO
    if not isinstance(resolved, int):
        logging.getLogger(__name__).warning("Ignoring %s=%r: not a log level", LOG_LEVEL_ENV, name)
        return logging.INFO
    return resolved


def setup_logging(bugtrail_dir: Path, *, level: int | None = None) -> logging.Logger:
    """Route every ``bugtrail.*`` logger into .bugtrail/bugtrail.log.

    Calling again with the same directory is a no-op; a different
    directory replaces the previous file handler.
    """
    package_logger = logging.getLogger("bugtrail")
    log_path = Path(os.path.abspath(bugtrail_dir / LOG_FILENAME))

    with _lock:
        package_logger.setLevel(_resolve_level(level))
        stale = [h for h in package_logger.handlers if isinstance(h, RotatingFileHandler)]
        if any(Path(h.baseFilename) == log_path for h in stale):
            return package_logger
        for h in stale:
            package_logger.removeHandler(h)
            h.close()

        handler = RotatingFileHandler(log_path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT)
        handler.setFormatter(JsonLineFormatter())
        package_logger.addHandler(handler)
    return package_logger
