"""FastAPI application entry point."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from meterai.api import credentials, usage
from meterai.context import AppContext, build_context
from meterai.core.exceptions import (
    ConfigurationError,
    CredentialNotFoundError,
    MeterError,
    SecretStoreError,
    TokenImportError,
)
from meterai.logging import configure_logging, get_request_id
from meterai.middleware.request_context import RequestContextMiddleware

logger = logging.getLogger("meterai.app")

_ERROR_STATUS: list[tuple[type[MeterError], int, str]] = [
    (ConfigurationError, 404, "not_found"),
    (CredentialNotFoundError, 404, "credential_not_found"),
    (TokenImportError, 400, "invalid_import"),
    (SecretStoreError, 503, "secret_store_unavailable"),
]


def _error_response(status_code: int, message: str, error_type: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"message": message, "type": error_type, "code": error_type}},
    )


def create_app(context: AppContext | None = None) -> FastAPI:
    """Build the local API around an explicitly owned :class:`AppContext`."""
    if context is None:
        context = build_context()
        configure_logging(context.data_dir)

    app = FastAPI(
        title="MeterAI",
        version="0.1.0",
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/openapi.json",
    )
    app.state.context = context
    app.include_router(usage.router)
    app.include_router(credentials.router)
    app.add_middleware(RequestContextMiddleware)

    @app.exception_handler(MeterError)
    async def meter_error_handler(request: Request, exc: MeterError) -> JSONResponse:
        for error_cls, status_code, error_type in _ERROR_STATUS:
            if isinstance(exc, error_cls):
                logger.warning(
                    exc.message,
                    extra={"event": "request_rejected", "path": request.url.path, "type": error_type},
                )
                return _error_response(status_code, exc.message, error_type)
        return await unexpected_exception_handler(request, exc)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error_response(400, str(exc), "invalid_request")

    @app.exception_handler(Exception)
    async def unexpected_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled error",
            extra={
                "event": "request_error",
                "path": request.url.path,
                "request_id": get_request_id(),
            },
        )
        return _error_response(500, "Internal server error", "internal_server_error")

    return app
