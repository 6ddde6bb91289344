"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class DashboardError(Exception):
    """Base exception with HTTP status code."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class FetchError(DashboardError):
    """Upstream fetch failed (transport error or non-success status).

    `status` is the upstream HTTP status, or None when no response arrived.
    """

    def __init__(self, status: int | None, message: str):
        super().__init__(message, status_code=502)
        self.status = status


class InvalidKeyError(DashboardError):
    def __init__(self, key: object):
        super().__init__(f"Invalid cache key: {key!r}", status_code=400)
        self.key = key


class ComputationError(DashboardError):
    def __init__(self, message: str):
        super().__init__(message, status_code=422)


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(FetchError)
    async def handle_fetch_error(_request: Request, exc: FetchError):
        return JSONResponse(
            {"error": str(exc), "upstream_status": exc.status},
            status_code=exc.status_code,
        )

    @app.exception_handler(DashboardError)
    async def handle_dashboard_error(_request: Request, exc: DashboardError):
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(ValueError)
    async def handle_value_error(_request: Request, exc: ValueError):
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            {"error": "Internal server error"},
            status_code=500,
        )
