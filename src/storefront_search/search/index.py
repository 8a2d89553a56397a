"""
Product Search Index

This module turns a flat product list into a flat tuple of IndexEntry
records suitable for an O(N) linear scan.

Key Properties
--------------
- Case folding happens once per product at build time, never per query
- Output order equals input order, so score ties fall back to catalog order
- Indexes are rebuilt wholesale, never patched
- Each build gets a new generation number; query caches key on it
"""

from __future__ import annotations

import itertools
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ..catalog.models import Product
from ..config import settings

logger = logging.getLogger("storefront.search")


# ---------------------------------------------------------------------
# Index Records
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class IndexEntry:
    """One product with every searchable field pre-lowercased."""
    product: Product
    title: str
    category: str
    collections: str
    product_type: str
    handle: str
    # All of the above joined; a miss here is a miss everywhere
    combined: str


@dataclass(frozen=True)
class ProductIndex:
    """A built index plus the bookkeeping needed to judge its age."""
    cache_key: str
    entries: Tuple[IndexEntry, ...]
    built_at: float
    generation: int

    def __len__(self) -> int:
        return len(self.entries)

    def age(self, now: float) -> float:
        return now - self.built_at


# Sync noise in imported titles: links, SKU-like digit runs, "| 12" suffixes
_TITLE_NOISE = (
    re.compile(r"https?://\S+"),
    re.compile(r"\b\d{6,}\b"),
    re.compile(r"\|\s*\d+"),
)


def clean_title(title: str) -> str:
    """Strip sync noise from a title and collapse whitespace."""
    for pattern in _TITLE_NOISE:
        title = pattern.sub("", title)
    return " ".join(title.split())


def make_entry(product: Product) -> IndexEntry:
    title = clean_title(product.title).lower()
    category = (product.category or product.product_type or "").lower()
    collections = " ".join(product.collection_handles).lower()
    product_type = (product.product_type or "").lower()
    handle = (product.handle or "").lower()

    return IndexEntry(
        product=product,
        title=title,
        category=category,
        collections=collections,
        product_type=product_type,
        handle=handle,
        combined=f"{title} {category} {collections} {product_type} {handle}",
    )


def build_index(products: Iterable[Product]) -> Tuple[IndexEntry, ...]:
    """
    Build index entries for `products` in a single pass.

    Pure function of its input: the same product list always yields equal
    entries in the same order.
    """
    return tuple(make_entry(p) for p in products)


# ---------------------------------------------------------------------
# Cached Builder
# ---------------------------------------------------------------------

class SearchIndexBuilder:
    """
    Builds ProductIndex objects and caches them per cache key.

    A cached index is returned by `build()` while younger than
    `cache_seconds`; `rebuild()` always builds.
    """

    def __init__(
        self,
        cache_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache_seconds = (
            settings.index_cache_seconds if cache_seconds is None else cache_seconds
        )
        self.clock = clock
        self._cache: Dict[str, ProductIndex] = {}
        self._generations = itertools.count(1)

    def peek(self, cache_key: str) -> Optional[ProductIndex]:
        """Return the cached index for `cache_key` regardless of age."""
        return self._cache.get(cache_key)

    def is_stale(self, index: ProductIndex) -> bool:
        return index.age(self.clock()) >= self.cache_seconds

    def get_cached(self, cache_key: str) -> Optional[ProductIndex]:
        """Return the cached index for `cache_key` if it is still fresh."""
        index = self._cache.get(cache_key)
        if index is None or self.is_stale(index):
            return None
        return index

    def cached_keys(self) -> List[str]:
        return sorted(self._cache)

    def build(self, products: Iterable[Product], cache_key: str) -> ProductIndex:
        """
        Return the fresh cached index for `cache_key`, building one if needed.
        """
        cached = self.get_cached(cache_key)
        if cached is not None:
            return cached
        return self.rebuild(products, cache_key)

    def rebuild(self, products: Iterable[Product], cache_key: str) -> ProductIndex:
        """
        Build a new index generation for `cache_key` and cache it.
        """
        started = time.perf_counter()
        entries = build_index(products)
        duration_ms = (time.perf_counter() - started) * 1000

        if duration_ms > settings.slow_index_build_ms:
            logger.warning(
                "Search index build took %.2fms for %d products",
                duration_ms,
                len(entries),
            )

        index = ProductIndex(
            cache_key=cache_key,
            entries=entries,
            built_at=self.clock(),
            generation=next(self._generations),
        )
        self._cache[cache_key] = index
        return index

    def invalidate(self, cache_key: Optional[str] = None) -> None:
        """Drop one cached index, or all of them."""
        if cache_key is None:
            self._cache.clear()
        else:
            self._cache.pop(cache_key, None)
