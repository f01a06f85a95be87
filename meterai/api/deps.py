"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from meterai.context import AppContext


def get_context(request: Request) -> AppContext:
    return request.app.state.context
