"""
Global middleware and exception handlers.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from connectors.errors import (
    ConfigurationError,
    CryptoError,
    ExchangeError,
    IntegrationError,
    UpstreamError,
)

logger = logging.getLogger(__name__)


def register_middleware(app: FastAPI) -> None:
    """Attach any app-level middleware."""

    @app.middleware("http")
    async def request_timer(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.debug("%s %s — %.3fs", request.method, request.url.path, elapsed)
        return response


def register_exception_handlers(app: FastAPI) -> None:
    """Translate the connectors error taxonomy into JSON error bodies."""

    @app.exception_handler(CryptoError)
    async def crypto_error(request: Request, exc: CryptoError):
        logger.error("Crypto failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.exception_handler(ConfigurationError)
    async def configuration_error(request: Request, exc: ConfigurationError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "requiresConfiguration": True},
        )

    @app.exception_handler(UpstreamError)
    async def upstream_error(request: Request, exc: UpstreamError):
        logger.warning("Upstream error from %s: %s", exc.platform or "platform", exc.message)
        body = {"error": exc.message, "platform": exc.platform}
        if isinstance(exc, ExchangeError):
            body["upstreamStatus"] = exc.upstream_status
            body["details"] = exc.payload
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(IntegrationError)
    async def integration_error(request: Request, exc: IntegrationError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
