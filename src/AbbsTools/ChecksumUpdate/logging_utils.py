"""Structured logging helpers shared across checksum refresh components."""

from __future__ import annotations

import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import IO, Dict, Iterator, List, Optional, Tuple

__all__ = [
    "JSONFormatter",
    "mask_sensitive_data",
    "retarget_console_handlers",
    "setup_logging",
]

LOGGER_NAME = "AbbsTools.ChecksumUpdate"

_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password", "cookie"}
_STANDARD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message"}


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Remove secrets from structured payloads prior to logging.

    Examples:
        >>> mask_sensitive_data({"token": "secret", "status": "ok"})
        {'token': '***masked***', 'status': 'ok'}
    """
    masked: Dict[str, object] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            masked[key] = "***masked***"
        else:
            masked[key] = value
    return masked


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string including ``extra`` fields."""

        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload), default=str)


def setup_logging(
    *,
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    max_log_size_mb: int = 10,
    backup_count: int = 3,
    propagate: bool = False,
) -> logging.Logger:
    """Configure package logging with a console handler and optional JSON file."""

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_abbs_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler):
                stream = getattr(handler, "stream", None)
                if stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()

    console_formatter = logging.Formatter("%(levelname)s: %(message)s")
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(console_formatter)
    stream_handler._abbs_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now(timezone.utc).strftime("%Y%m%d")
        file_handler = RotatingFileHandler(
            log_dir / f"update-checksum-{today}.jsonl",
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=backup_count,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._abbs_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger


@contextmanager
def retarget_console_handlers(stream: Optional[IO[str]] = None) -> Iterator[None]:
    """Point the managed console handler at ``stream`` for the duration of the block.

    A live progress display replaces ``sys.stderr`` with a proxy that prints
    above the bars; console handlers keep the stream they were created with,
    so they are retargeted here (``stream`` defaults to the current
    ``sys.stderr``) and restored on exit.  JSON file handlers are untouched.
    """

    target = stream if stream is not None else sys.stderr
    logger = logging.getLogger(LOGGER_NAME)
    swapped: List[Tuple[logging.StreamHandler, IO[str]]] = []
    for handler in logger.handlers:
        if not getattr(handler, "_abbs_managed", False):
            continue
        if isinstance(handler, logging.StreamHandler) and not isinstance(
            handler, logging.FileHandler
        ):
            swapped.append((handler, handler.stream))
            handler.setStream(target)
    try:
        yield
    finally:
        for handler, previous in swapped:
            handler.setStream(previous)
