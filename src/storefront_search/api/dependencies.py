from functools import lru_cache

from ..catalog.source import CatalogSource, DatabaseCatalogSource
from ..search.engine import HierarchicalSearchEngine
from ..search.metrics import SearchPerformanceMonitor
from ..search.refresh import CacheRefreshController


# Process-wide singletons. Routes receive them through Depends so tests can
# swap in fresh instances via app.dependency_overrides.

@lru_cache
def get_catalog_source() -> CatalogSource:
    return DatabaseCatalogSource()


@lru_cache
def get_refresh_controller() -> CacheRefreshController:
    return CacheRefreshController(source=get_catalog_source())


@lru_cache
def get_search_engine() -> HierarchicalSearchEngine:
    return HierarchicalSearchEngine()


@lru_cache
def get_performance_monitor() -> SearchPerformanceMonitor:
    return SearchPerformanceMonitor()
