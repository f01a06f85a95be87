"""Logging setup for the tracker: console output plus a rotating JSON-lines file.

Records pass through two filters before any handler formats them. One binds
the current API request ID, the other scrubs secret-looking values so that
OAuth tokens and API keys never reach a log file.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import pathlib
import re
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Any, Dict

from meterai.core.config import default_data_dir

LOG_FILE_NAME = "meterai.jsonl"
LOG_MAX_BYTES = 5_000_000
LOG_BACKUP_COUNT = 3
REDACTED = "[redacted]"

_configured = False
_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)

_SECRET_FIELDS = {"token", "access_token", "refresh_token", "api_key", "authorization", "secret"}
_SECRET_PATTERN = re.compile(r"\b(sk-[A-Za-z0-9_\-]{8,}|Bearer\s+\S+)")

# LogRecord attributes that are never copied into the JSON payload.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "request_id",
}


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = _request_id.get()
        return True


class SecretRedactionFilter(logging.Filter):
    """Replace secret fields and token-shaped substrings with a placeholder."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key in list(vars(record)):
            if key.lower() in _SECRET_FIELDS:
                setattr(record, key, REDACTED)
        if isinstance(record.msg, str):
            record.msg = _SECRET_PATTERN.sub(REDACTED, record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(
                _SECRET_PATTERN.sub(REDACTED, arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line; ``extra`` fields become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None)
        if request_id:
            payload["request_id"] = request_id

        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRS and not key.startswith("_") and key not in payload
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def set_request_id(request_id: str | None) -> contextvars.Token[str | None]:
    return _request_id.set(request_id)


def reset_request_id(token: contextvars.Token[str | None]) -> None:
    _request_id.reset(token)


def get_request_id() -> str | None:
    return _request_id.get()


def log_file_path(data_dir: pathlib.Path) -> pathlib.Path:
    """Return the JSON log location: ``LOG_FILE`` if set, else ``<data_dir>/logs``."""
    override = os.getenv("LOG_FILE")
    path = pathlib.Path(override) if override else data_dir / "logs" / LOG_FILE_NAME
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def configure_logging(data_dir: pathlib.Path | None = None) -> None:
    """Install the console and file handlers on the root logger once per process."""
    global _configured
    if _configured:
        return

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    filters = (RequestContextFilter(), SecretRedactionFilter())

    console = logging.StreamHandler()
    console.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "WARNING").upper(), logging.WARNING))
    console.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s (request_id=%(request_id)s)")
    )

    log_file = RotatingFileHandler(
        log_file_path(data_dir or default_data_dir()),
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    log_file.setLevel(logging.INFO)
    log_file.setFormatter(JsonFormatter())

    for handler in (console, log_file):
        for log_filter in filters:
            handler.addFilter(log_filter)
        root.addHandler(handler)

    for noisy in ("uvicorn", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _configured = True


__all__ = [
    "JsonFormatter",
    "RequestContextFilter",
    "SecretRedactionFilter",
    "configure_logging",
    "get_request_id",
    "log_file_path",
    "reset_request_id",
    "set_request_id",
]
