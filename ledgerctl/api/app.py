"""FastAPI application factory for ledgerctl.

Usage::

    from ledgerctl.api.app import create_app

    app = create_app(queue=queue, restart_service=restart_service, config=config)

The factory is used by both the production bootstrap (``ledgerctl.app``)
and unit tests.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ledgerctl.api.routes import router
from ledgerctl.api.schemas import ErrorResponse

_log = structlog.get_logger(component="api.app")

_API_PREFIX = "/api/v1"


def create_app(queue: Any, restart_service: Any, config: Any = None) -> FastAPI:
    """Create and configure the ledgerctl FastAPI application.

    Args:
        queue:           Shared IntentQueue.
        restart_service: StaggeredRestartService, read for coordination records.
        config:          LedgerctlConfig. Supplies the default namespace.

    Returns:
        Configured FastAPI application, ready to be served by uvicorn.
    """
    from ledgerctl import __version__

    app = FastAPI(
        title="ledgerctl",
        summary="Ledger-network fleet controller introspection API",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
    )

    app.state.queue = queue
    app.state.restart_service = restart_service
    app.state.config = config

    app.include_router(router, prefix=_API_PREFIX)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        _request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = exc.errors()
        first_msg = str(errors[0].get("msg", "")) if errors else ""
        return JSONResponse(
            status_code=400,
            content=ErrorResponse(error="INVALID_REQUEST", detail=first_msg).model_dump(),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all for unhandled exceptions; never expose stack traces."""
        _log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="INTERNAL_ERROR",
                detail="An unexpected error occurred.",
            ).model_dump(),
        )

    return app
