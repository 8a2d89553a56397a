"""
Search Routes

This module defines the storefront product search endpoints. Every route is
scoped to one delivery-app storefront through the `app_slug` path segment,
which namespaces all index and query caches.

Actions
-------
- search:     rank the tenant's index against `query`
- preload:    force an index rebuild, return the index size
- warm_cache: preload, then replay the configured common queries
"""

import time
from typing import Annotated, Union

from fastapi import APIRouter, Depends, Query, status

from .dependencies import get_performance_monitor, get_refresh_controller, get_search_engine
from .models import (
    CacheClearResponse,
    CacheWarmResponse,
    ProductResult,
    SearchRequest,
    SearchResponse,
    SuggestionResponse,
    format_load_time,
)
from ..config import settings
from ..search.engine import HierarchicalSearchEngine, normalize_query
from ..search.metrics import SearchPerformanceMonitor
from ..search.refresh import CacheRefreshController
from ..tenants import resolve_tenant

router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "/{app_slug}",
    response_model=Union[SearchResponse, CacheWarmResponse],
    summary="Hierarchical product search and cache control",
    status_code=status.HTTP_200_OK,
)
async def search(
    app_slug: str,
    req: SearchRequest,
    controller: Annotated[CacheRefreshController, Depends(get_refresh_controller)],
    engine: Annotated[HierarchicalSearchEngine, Depends(get_search_engine)],
    monitor: Annotated[SearchPerformanceMonitor, Depends(get_performance_monitor)],
) -> Union[SearchResponse, CacheWarmResponse]:
    """
    Search a storefront's products, or rebuild its index.

    A stale index still answers immediately; the refresh happens in the
    background. Only a cold storefront waits for the catalog.
    """
    started = time.perf_counter()
    tenant = resolve_tenant(app_slug)

    # -------------------------------------------------------------
    # Cache control actions
    # -------------------------------------------------------------
    if req.action in ("preload", "warm_cache"):
        # CatalogUnavailableError propagates to the registered handler
        index = await controller.refresh(tenant)

        warmed = 0
        if req.action == "warm_cache":
            warmed = engine.pre_warm_cache(settings.common_queries, index, req.limit)

        return CacheWarmResponse(
            cached=len(index),
            load_time=format_load_time((time.perf_counter() - started) * 1000),
            warmed_queries=warmed,
        )

    # -------------------------------------------------------------
    # Search
    # -------------------------------------------------------------
    index = await controller.get_index(tenant)
    outcome = engine.run(req.query, index, req.limit, req.category)

    duration_ms = (time.perf_counter() - started) * 1000
    term = normalize_query(req.query)
    if term:
        monitor.record_search(term, duration_ms, len(outcome.hits))

    return SearchResponse(
        products=[ProductResult.from_hit(hit) for hit in outcome.hits],
        total_found=outcome.total_found,
        query=term,
        load_time=format_load_time(duration_ms),
        from_cache=outcome.from_cache,
        index_size=len(index),
    )


@router.get(
    "/{app_slug}/suggestions",
    response_model=SuggestionResponse,
    summary="Type-ahead title suggestions",
)
async def suggestions(
    app_slug: str,
    controller: Annotated[CacheRefreshController, Depends(get_refresh_controller)],
    engine: Annotated[HierarchicalSearchEngine, Depends(get_search_engine)],
    q: Annotated[str, Query(max_length=200)] = "",
    limit: Annotated[int, Query(ge=1, le=50)] = settings.default_suggestion_limit,
) -> SuggestionResponse:
    tenant = resolve_tenant(app_slug)
    index = await controller.get_index(tenant)

    return SuggestionResponse(
        query=normalize_query(q),
        suggestions=engine.get_search_suggestions(q, index, limit),
    )


@router.delete(
    "/{app_slug}/cache",
    response_model=CacheClearResponse,
    summary="Drop a storefront's index and cached results",
)
async def clear_cache(
    app_slug: str,
    controller: Annotated[CacheRefreshController, Depends(get_refresh_controller)],
    engine: Annotated[HierarchicalSearchEngine, Depends(get_search_engine)],
) -> CacheClearResponse:
    tenant = resolve_tenant(app_slug)

    controller.invalidate(tenant)
    engine.invalidate()

    return CacheClearResponse(app_slug=tenant.app_slug)
