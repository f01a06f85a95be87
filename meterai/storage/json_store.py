"""JSON document helpers for state, vault metadata and the change log.

Writes follow a best-effort policy: a failed write is logged and reported
through the return value, never raised. In-memory state is kept even when
the document on disk could not be updated.
"""

from __future__ import annotations

import json
import logging
import os
import pathlib
import tempfile
from typing import Any

logger = logging.getLogger("meterai.json_store")


def read_json(path: pathlib.Path) -> Any:
    """Return the decoded document at ``path``, or ``None`` if missing or unreadable."""
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        logger.warning(
            "Unable to read JSON document",
            extra={"event": "json_read_error", "path": str(path)},
            exc_info=True,
        )
        return None


def write_json(path: pathlib.Path, payload: Any) -> None:
    """Atomically replace ``path`` with ``payload`` (temp file, then rename)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def best_effort_write(path: pathlib.Path, payload: Any) -> bool:
    """Write ``payload`` to ``path``; log and return ``False`` on failure."""
    try:
        write_json(path, payload)
    except (OSError, TypeError, ValueError):
        logger.warning(
            "Failed to persist JSON document",
            extra={"event": "persist_error", "path": str(path)},
            exc_info=True,
        )
        return False
    return True


def best_effort_remove(path: pathlib.Path) -> bool:
    """Remove ``path`` if it exists; log and return ``False`` on failure."""
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning(
            "Failed to remove JSON document",
            extra={"event": "persist_error", "path": str(path)},
            exc_info=True,
        )
        return False
    return True


__all__ = ["best_effort_remove", "best_effort_write", "read_json", "write_json"]
