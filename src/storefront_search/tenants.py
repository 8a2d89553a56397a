"""
Multi-Tenant Support

This module provides tenant isolation for serving many delivery-app
storefronts from a single search deployment.

Architecture
------------
- Each storefront is identified by a unique `app_slug` (e.g., "austin-lake-party")
- All storefronts share one process-wide index registry and query cache
- Isolation comes from composite cache keys, never from separate instances
- Tenant context is extracted from the request path

Security
--------
- app_slug is validated before it is ever used as part of a cache key
- Only alphanumeric characters, hyphens, and underscores allowed
- Maximum 64 characters
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, ValidationError, field_validator


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

APP_SLUG_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")

DEFAULT_APP_SLUG = "default"

INDEX_KEY_PREFIX = "products:"


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class InvalidTenantError(ValueError):
    """Raised when an app_slug is missing or malformed."""


# ---------------------------------------------------------------------
# Tenant Context Model
# ---------------------------------------------------------------------

class TenantContext(BaseModel):
    """
    Represents an isolated storefront tenant.

    Slugs are case-insensitive: "Lake-Party" and "lake-party" share a cache.
    """

    app_slug: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Unique identifier for the delivery-app storefront.",
    )

    @field_validator("app_slug", mode="before")
    @classmethod
    def validate_app_slug(cls, v: str) -> str:
        if not v or not isinstance(v, str):
            raise InvalidTenantError("app_slug is required")

        v = v.strip().lower()

        if not APP_SLUG_PATTERN.match(v):
            raise InvalidTenantError(
                f"Invalid app_slug '{v}': must be 1-64 alphanumeric chars, hyphens, or underscores"
            )

        return v

    @property
    def index_key(self) -> str:
        """Cache key of this tenant's product index."""
        return index_cache_key(self.app_slug)


# ---------------------------------------------------------------------
# Cache Key Utilities
# ---------------------------------------------------------------------

def resolve_tenant(app_slug: str | None) -> TenantContext:
    """
    Build a validated TenantContext, falling back to the default storefront.

    Raises
    ------
    InvalidTenantError
        If app_slug is present but malformed.
    """
    try:
        return TenantContext(app_slug=app_slug or DEFAULT_APP_SLUG)
    except ValidationError as exc:
        # Pydantic wraps validator errors; surface the domain error instead
        raise InvalidTenantError(exc.errors()[0]["msg"]) from exc


def index_cache_key(app_slug: str) -> str:
    """
    Return the composite index cache key for a storefront.
    """
    return f"{INDEX_KEY_PREFIX}{app_slug}"


def app_slug_from_index_key(cache_key: str) -> str | None:
    """
    Inverse of `index_cache_key`. Returns None for keys of other caches.
    """
    if not cache_key.startswith(INDEX_KEY_PREFIX):
        return None
    return cache_key[len(INDEX_KEY_PREFIX):]
