"""
Global Error Handling

This module defines application-wide exception handlers for the search
service.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
- Search failures still look like a (empty) search response to clients
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

from ..catalog.source import CatalogUnavailableError
from ..tenants import InvalidTenantError

logger = logging.getLogger("storefront.errors")


# ---------------------------------------------------------------------
# Domain Exception Handlers
# ---------------------------------------------------------------------

async def catalog_unavailable_handler(
    request: Request,
    exc: CatalogUnavailableError,
) -> JSONResponse:
    """
    Map a failed forced catalog refresh to a 503.

    The payload keeps the search response shape (`products`, `totalFound`)
    so storefront clients can render "no results" without special casing.
    """
    logger.error(
        "Catalog unavailable during request: %s %s (%s)",
        request.method,
        request.url.path,
        exc,
    )

    payload: Dict[str, Any] = {
        "error": "catalog_unavailable",
        "detail": str(exc),
        "products": [],
        "totalFound": 0,
    }

    return JSONResponse(
        status_code=503,
        content=payload,
    )


async def invalid_tenant_handler(
    request: Request,
    exc: InvalidTenantError,
) -> JSONResponse:
    """
    Reject malformed storefront slugs with a 400.
    """
    logger.warning("Rejected tenant on %s: %s", request.url.path, exc)

    return JSONResponse(
        status_code=400,
        content={"error": "invalid_tenant", "detail": str(exc)},
    )


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    This handler should be registered with FastAPI as the final safety net
    for any exception not otherwise handled by route-level or framework-level
    handlers.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    - Ensures consistent error response format across the entire API.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    # Deterministic, minimal external error surface
    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
