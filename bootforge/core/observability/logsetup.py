from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Optional


LOGGER_NAME = "bootforge"

# 10MB max per file, 5 backups
_MAX_BYTES = 10 * 1024 * 1024
_BACKUP_COUNT = 5

_PLAIN_FORMAT = "[%(levelname)s] %(message)s"


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line: ts, level, logger, unit (when known), msg."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
        }
        unit = getattr(record, "unit", None)
        if unit:
            payload["unit"] = unit
        payload["msg"] = record.getMessage()
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


class PlainFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(_PLAIN_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        unit = getattr(record, "unit", None)
        if unit and record.name.endswith(".unit"):
            return f"  [{unit}] {record.getMessage()}"
        return super().format(record)


def _formatter(log_format: str) -> logging.Formatter:
    return JsonLineFormatter() if log_format == "json" else PlainFormatter()


def _get_rotating_handler(log_file: Path, log_format: str) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    h = logging.handlers.RotatingFileHandler(
        str(log_file),
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    h.setFormatter(_formatter(log_format))
    return h


def configure_logging(
    verbose: bool = False,
    log_format: str = "plain",
    log_file: Optional[Path] = None,
    stream: Optional[IO[str]] = None,
) -> logging.Logger:
    """Install the console (and optional file) sink on the ``bootforge`` logger.

    Safe to call more than once: handlers from an earlier call are replaced.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for h in list(logger.handlers):
        if getattr(h, "_bootforge_sink", False):
            logger.removeHandler(h)
            h.close()

    console = logging.StreamHandler(stream or sys.stderr)
    console.setFormatter(_formatter(log_format))
    handlers = [console]
    if log_file is not None:
        handlers.append(_get_rotating_handler(log_file, log_format))

    for h in handlers:
        h._bootforge_sink = True  # type: ignore[attr-defined]
        logger.addHandler(h)

    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger
