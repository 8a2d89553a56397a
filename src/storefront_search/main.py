"""
Storefront Search Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures global exception handling, and provides a test-friendly application
factory.

Design Goals
------------
- Deterministic startup
- Explicit dependency initialization order
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .config import settings
from .catalog.source import CatalogUnavailableError
from .core.errors import (
    catalog_unavailable_handler,
    invalid_tenant_handler,
    unhandled_exception_handler,
)
from .db import dispose_engine
from .tenants import InvalidTenantError
from .api import (
    health_routes,
    search_routes,
    stats_routes,
)
from .api.dependencies import get_refresh_controller
from .storage.universal import get_universal_storage


logger = logging.getLogger("storefront.app")


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup / shutdown hook.

    Shutdown cancels background index refreshes before closing the
    database pool they may be using, then drops the session storage tier.
    """
    logging.getLogger("storefront").setLevel(settings.log_level.upper())
    logger.info("Starting storefront-search")

    yield

    logger.info("Shutting down storefront-search")
    await get_refresh_controller().shutdown()
    await dispose_engine()

    # Only close storage if something in this process opened it
    if get_universal_storage.cache_info().currsize:
        get_universal_storage().close()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory pattern allows:
    - Clean test instantiation
    - Isolated app instances for integration tests
    - Controlled dependency overrides in pytest

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="storefront-search",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(CatalogUnavailableError, catalog_unavailable_handler)
    app.add_exception_handler(InvalidTenantError, invalid_tenant_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(search_routes.router)
    app.include_router(stats_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn/Gunicorn)
# ---------------------------------------------------------------------

app = create_app()
