"""
Catalog Sources

A catalog source answers one question: "what does the product cache table
contain right now?". The search layer treats the answer as a read-only bulk
list and rebuilds its index from it wholesale.

Implementations
---------------
- DatabaseCatalogSource: reads the synced product cache table via SQLAlchemy
- StaticCatalogSource: serves a fixed list (local development, tests)
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional, Protocol

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import Product
from ..db import AsyncSessionLocal, ProductCacheRow
from ..tenants import TenantContext

logger = logging.getLogger("storefront.catalog")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class CatalogUnavailableError(RuntimeError):
    """Raised when the product catalog cannot be fetched."""


# ---------------------------------------------------------------------
# Source Protocol
# ---------------------------------------------------------------------

class CatalogSource(Protocol):
    async def fetch_products(self, tenant: TenantContext) -> List[Product]:
        """
        Return the full current product list for a storefront.

        Raises
        ------
        CatalogUnavailableError
            If the catalog cannot be reached.
        """
        ...


def normalize_rows(rows: Iterable[Mapping[str, Any]]) -> List[Product]:
    """
    Convert raw catalog rows into Products, preserving row order.

    Rows that cannot be normalized are logged and skipped so one corrupt
    record never takes the whole catalog offline.
    """
    products: List[Product] = []
    for row in rows:
        try:
            products.append(Product.from_row(row))
        except ValidationError as exc:
            logger.warning(
                "Skipping malformed catalog row id=%r: %d validation error(s)",
                row.get("id"),
                exc.error_count(),
            )
    return products


# ---------------------------------------------------------------------
# Database Source
# ---------------------------------------------------------------------

class DatabaseCatalogSource:
    """
    Reads every row of the product cache table in a single query.

    The table is shared by all storefronts; tenants only namespace the
    caches built on top of it.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self._session_factory = session_factory or AsyncSessionLocal

    async def fetch_products(self, tenant: TenantContext) -> List[Product]:
        stmt = select(ProductCacheRow)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = [row.as_row() for row in result.scalars().all()]
        except (SQLAlchemyError, OSError) as exc:
            logger.error(
                "Catalog fetch failed for %s (%s): %s",
                tenant.app_slug,
                type(exc).__name__,
                str(exc),
            )
            raise CatalogUnavailableError(
                f"Failed to load products: {type(exc).__name__}"
            ) from exc

        products = normalize_rows(rows)
        logger.info("Loaded %d products for %s", len(products), tenant.app_slug)
        return products


# ---------------------------------------------------------------------
# Static Source
# ---------------------------------------------------------------------

class StaticCatalogSource:
    """
    Serves a fixed product list. `replace()` swaps the catalog wholesale,
    the same way a sync would.
    """

    def __init__(self, rows: Iterable[Mapping[str, Any]] = ()) -> None:
        self._products: List[Product] = normalize_rows(rows)
        self.fetch_count = 0

    def replace(self, rows: Iterable[Mapping[str, Any]]) -> None:
        self._products = normalize_rows(rows)

    async def fetch_products(self, tenant: TenantContext) -> List[Product]:
        self.fetch_count += 1
        return list(self._products)
