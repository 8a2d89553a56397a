"""
Search Statistics

This module exposes a diagnostics endpoint summarizing recent search
latency, query-cache occupancy, and which storefront indexes are loaded.

Metrics Tracked
---------------
- Rolling average search time (last 100 searches)
- Slow searches over a configurable threshold
- Cached query results
- Loaded tenant indexes and in-flight background refreshes
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from .dependencies import get_performance_monitor, get_refresh_controller, get_search_engine
from .models import SearchStatsResponse
from ..search.engine import HierarchicalSearchEngine
from ..search.metrics import SLOW_SEARCH_THRESHOLD_MS, SearchPerformanceMonitor
from ..search.refresh import CacheRefreshController

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/search", response_model=SearchStatsResponse)
async def get_search_stats(
    monitor: Annotated[SearchPerformanceMonitor, Depends(get_performance_monitor)],
    engine: Annotated[HierarchicalSearchEngine, Depends(get_search_engine)],
    controller: Annotated[CacheRefreshController, Depends(get_refresh_controller)],
    slow_ms: Annotated[float, Query(gt=0, le=60000)] = SLOW_SEARCH_THRESHOLD_MS,
) -> SearchStatsResponse:
    """
    Return the search performance report.
    """
    report = monitor.report(threshold_ms=slow_ms)

    return SearchStatsResponse(
        **report,
        cached_queries=engine.cache_size,
        loaded_tenants=controller.loaded_tenants(),
        background_refreshes=controller.in_flight,
    )
