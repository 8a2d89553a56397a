"""
Cache Refresh Controller

Decides when a tenant's product index is stale and refreshes it without
ever making a search wait on a slow catalog fetch.

State Machine (per tenant index key)
------------------------------------
COLD   no index yet: fetch and build before answering (first-request cost)
WARM   age < cache_seconds: answer from the index, nothing else happens
STALE  age >= cache_seconds: answer from the stale index AND schedule a
       fire-and-forget background refresh for later requests

Refresh failures are logged and leave the stale index in service. Refreshes
are not deduplicated: concurrent triggers may run concurrent rebuilds, and
whichever finishes last wins. Rebuilding is a pure function of the catalog,
so this is safe on a single-threaded event loop without locks.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import List, Optional, Set

from .index import ProductIndex, SearchIndexBuilder
from ..catalog.source import CatalogSource, CatalogUnavailableError
from ..tenants import TenantContext, app_slug_from_index_key

logger = logging.getLogger("storefront.refresh")


class CacheState(str, Enum):
    COLD = "cold"
    WARM = "warm"
    STALE = "stale"


class CacheRefreshController:
    """
    Decides when each tenant's index is rebuilt. The builder's per-key cache
    is the registry of live indexes; this class only reads through it.
    """

    def __init__(
        self,
        source: CatalogSource,
        builder: Optional[SearchIndexBuilder] = None,
    ) -> None:
        self._source = source
        self._builder = builder or SearchIndexBuilder()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def cache_seconds(self) -> float:
        return self._builder.cache_seconds

    @property
    def in_flight(self) -> int:
        """Number of background refreshes still running."""
        return len(self._tasks)

    # ------------------------------------------------------------------
    # State inspection
    # ------------------------------------------------------------------

    def state(self, tenant: TenantContext) -> CacheState:
        index = self._builder.peek(tenant.index_key)
        if index is None:
            return CacheState.COLD
        if self._builder.is_stale(index):
            return CacheState.STALE
        return CacheState.WARM

    def peek(self, tenant: TenantContext) -> Optional[ProductIndex]:
        """Return the live index without triggering anything."""
        return self._builder.peek(tenant.index_key)

    def loaded_tenants(self) -> List[str]:
        slugs = (app_slug_from_index_key(key) for key in self._builder.cached_keys())
        return sorted(slug for slug in slugs if slug is not None)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_index(self, tenant: TenantContext) -> ProductIndex:
        """
        Return the index to answer the current request with.

        Never waits on a refresh unless the tenant is cold. A cold tenant
        whose catalog fetch fails gets an empty, uncached index, so the next
        request tries again.
        """
        fresh = self._builder.get_cached(tenant.index_key)
        if fresh is not None:
            return fresh

        stale = self._builder.peek(tenant.index_key)

        if stale is None:
            try:
                return await self.refresh(tenant)
            except CatalogUnavailableError:
                logger.warning(
                    "Cold index build failed for %s; serving empty results",
                    tenant.app_slug,
                )
                return ProductIndex(
                    cache_key=tenant.index_key,
                    entries=(),
                    built_at=self._builder.clock(),
                    generation=0,
                )

        self._schedule_refresh(tenant)
        return stale

    async def refresh(self, tenant: TenantContext) -> ProductIndex:
        """
        Fetch the catalog and install a new index generation for `tenant`.

        Raises
        ------
        CatalogUnavailableError
            If the catalog fetch fails. The previous index stays in place.
        """
        products = await self._source.fetch_products(tenant)
        index = self._builder.rebuild(products, tenant.index_key)

        logger.info(
            "Index refreshed for %s: %d products (generation %d)",
            tenant.app_slug,
            len(index),
            index.generation,
        )
        return index

    def invalidate(self, tenant: Optional[TenantContext] = None) -> None:
        """
        Forget one tenant's index (or all), returning it to COLD.
        """
        self._builder.invalidate(None if tenant is None else tenant.index_key)

    async def wait_for_background_refreshes(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel in-flight refreshes."""
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Background refresh
    # ------------------------------------------------------------------

    def _schedule_refresh(self, tenant: TenantContext) -> None:
        task = asyncio.get_running_loop().create_task(
            self._background_refresh(tenant),
            name=f"refresh:{tenant.index_key}",
        )
        # The loop only keeps weak references to tasks
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info("Stale index for %s; background refresh scheduled", tenant.app_slug)

    async def _background_refresh(self, tenant: TenantContext) -> None:
        try:
            await self.refresh(tenant)
        except asyncio.CancelledError:
            logger.info("Background refresh cancelled for %s", tenant.app_slug)
            raise
        except CatalogUnavailableError as exc:
            logger.warning(
                "Background refresh failed for %s: %s; keeping stale index",
                tenant.app_slug,
                exc,
            )
        except Exception:
            logger.exception(
                "Unexpected error refreshing index for %s; keeping stale index",
                tenant.app_slug,
            )
