"""
FastAPI application entrypoint for the delegated access gateway.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from dsu.api.routes import router as api_router
from dsu.core.config import get_settings
from dsu.core.errors import DSUError
from dsu.core.logging import configure_logging
from dsu.dependencies import get_shim_registry

logger = logging.getLogger(__name__)


async def _handle_dsu_error(request: Request, exc: DSUError) -> JSONResponse:
    log = logger.warning if exc.status_code >= 500 else logger.info
    log("%s %s failed (%s): %s", request.method, request.url.path, exc.kind.value, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    registry = get_shim_registry()
    logger.info("Serving shims for domains: %s", ", ".join(sorted(registry.domains())) or "none")

    app = FastAPI(
        title="Open mHealth Shim Gateway",
        version="0.1.0",
        description="Delegated, read-only access to third-party health and fitness data.",
    )
    app.add_exception_handler(DSUError, _handle_dsu_error)
    app.include_router(api_router)
    return app


app = create_app()

__all__ = ["app", "create_app"]
