"""Helper utilities for remote usage clients."""

from __future__ import annotations

from typing import Any

import httpx

MAX_ERROR_TEXT = 200


def extract_error_body(response: httpx.Response) -> Any:
    """Return structured error details if available, else a trimmed text body."""

    try:
        return response.json()
    except ValueError:
        text = getattr(response, "text", None)
        if text:
            stripped = text.strip()
            if stripped:
                return stripped[:MAX_ERROR_TEXT]
        return None


def describe_http_error(status_code: int, body: Any) -> str:
    """Build a short human-readable message for a non-success response."""
    detail: Any = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            detail = error.get("message")
        elif isinstance(error, str):
            detail = error
        detail = detail or body.get("message")
    elif isinstance(body, str):
        detail = body

    if status_code == 401:
        prefix = "Authentication failed"
    elif status_code == 403:
        prefix = "Access denied"
    elif status_code == 429:
        prefix = "Rate limited"
    else:
        prefix = f"HTTP {status_code}"
    return f"{prefix}: {detail}" if detail else prefix


__all__ = ["describe_http_error", "extract_error_body"]
