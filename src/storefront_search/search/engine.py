"""
Hierarchical Search Engine

Ranks index entries against a free-text query by the FIRST field that
contains it, in a fixed priority order:

    title (1000, +500 exact, +250 prefix)
      > collections (750)
      > category (500)
      > product type (250)
      > URL handle (100)

Titles are matched after sync noise (links, SKU digit runs) is stripped.
Scores never accumulate across fields. Entries matching no field are
dropped, not ranked last. Ties keep catalog order (stable sort).

Results are memoized per (index cache key, index generation, query,
category, limit). A new index generation therefore starts from an empty key
space, and the whole cache is also dropped once it is older than the
staleness window.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Iterable, List, Literal, Optional, Tuple

from .index import IndexEntry, ProductIndex
from ..catalog.models import Product
from ..config import settings

logger = logging.getLogger("storefront.search")


# ---------------------------------------------------------------------
# Scoring Policy
# ---------------------------------------------------------------------

TITLE_SCORE = 1000
TITLE_EXACT_BONUS = 500
TITLE_PREFIX_BONUS = 250
COLLECTION_SCORE = 750
CATEGORY_SCORE = 500
PRODUCT_TYPE_SCORE = 250
HANDLE_SCORE = 100

MIN_SUGGESTION_LENGTH = 2

MatchedField = Literal["title", "collections", "category", "productType", "handle"]


@dataclass(frozen=True)
class SearchHit:
    """A ranked product and the field that earned its score."""
    product: Product
    score: int
    matched_field: MatchedField


@dataclass(frozen=True)
class SearchOutcome:
    hits: Tuple[SearchHit, ...]
    total_found: int
    from_cache: bool = False

    @property
    def products(self) -> List[Product]:
        return [hit.product for hit in self.hits]


CacheKey = Tuple[str, int, str, str, int]


def normalize_query(query: Optional[str]) -> str:
    return (query or "").lower().strip()


def score_entry(entry: IndexEntry, term: str) -> Optional[SearchHit]:
    """
    Score one entry against a normalized, non-empty term.

    Returns None when no field contains the term.
    """
    if term not in entry.combined:
        return None

    if term in entry.title:
        score = TITLE_SCORE
        if entry.title == term:
            score += TITLE_EXACT_BONUS
        elif entry.title.startswith(term):
            score += TITLE_PREFIX_BONUS
        return SearchHit(entry.product, score, "title")

    if term in entry.collections:
        return SearchHit(entry.product, COLLECTION_SCORE, "collections")

    if term in entry.category:
        return SearchHit(entry.product, CATEGORY_SCORE, "category")

    if term in entry.product_type:
        return SearchHit(entry.product, PRODUCT_TYPE_SCORE, "productType")

    if term in entry.handle:
        return SearchHit(entry.product, HANDLE_SCORE, "handle")

    # Term only spans a field boundary in `combined`
    return None


# ---------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------

class HierarchicalSearchEngine:
    """
    Scores and ranks ProductIndex entries with a bounded query-result cache.

    The scan itself is synchronous and never yields; callers on an event
    loop hold it for the duration of one linear pass over the index.
    """

    def __init__(
        self,
        cache_seconds: Optional[float] = None,
        max_cache_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache_seconds = (
            settings.query_cache_seconds if cache_seconds is None else cache_seconds
        )
        self.max_cache_entries = (
            settings.search_cache_max_entries
            if max_cache_entries is None
            else max_cache_entries
        )
        self.clock = clock

        self._cache: "OrderedDict[CacheKey, SearchOutcome]" = OrderedDict()
        self._cache_started = clock()

        # Full index scans performed; cache hits do not count
        self.scan_count = 0

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def _clear_expired_cache(self) -> None:
        now = self.clock()
        if now - self._cache_started >= self.cache_seconds:
            self._cache.clear()
            self._cache_started = now

    def _remember(self, key: CacheKey, outcome: SearchOutcome) -> None:
        self._cache[key] = outcome
        while len(self._cache) > self.max_cache_entries:
            self._cache.popitem(last=False)

    def invalidate(self) -> None:
        """Drop every cached result."""
        self._cache.clear()
        self._cache_started = self.clock()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def run(
        self,
        query: Optional[str],
        index: ProductIndex,
        limit: int = 50,
        category: Optional[str] = None,
    ) -> SearchOutcome:
        """
        Rank `index` against `query` and return at most `limit` hits.

        An empty or whitespace-only query returns no hits.
        """
        term = normalize_query(query)
        if not term:
            return SearchOutcome(hits=(), total_found=0)

        category_term = normalize_query(category)
        if category_term == "all":
            category_term = ""

        self._clear_expired_cache()

        key: CacheKey = (
            index.cache_key,
            index.generation,
            term,
            category_term or "all",
            limit,
        )
        cached = self._cache.get(key)
        if cached is not None:
            return SearchOutcome(cached.hits, cached.total_found, from_cache=True)

        started = time.perf_counter()
        self.scan_count += 1

        hits: List[SearchHit] = []
        for entry in index.entries:
            if category_term and category_term not in entry.category:
                continue
            hit = score_entry(entry, term)
            if hit is not None:
                hits.append(hit)

        # list.sort is stable: equal scores keep catalog order
        hits.sort(key=lambda h: h.score, reverse=True)

        outcome = SearchOutcome(hits=tuple(hits[:limit]), total_found=len(hits))
        self._remember(key, outcome)

        duration_ms = (time.perf_counter() - started) * 1000
        if duration_ms > settings.slow_search_ms:
            logger.warning(
                "Hierarchical search took %.2fms for query %r",
                duration_ms,
                query,
            )

        return outcome

    def search(
        self,
        query: Optional[str],
        index: ProductIndex,
        max_results: int = 50,
        category: Optional[str] = None,
    ) -> List[SearchHit]:
        """
        Return ranked hits for `query`, truncated to `max_results`.
        """
        return list(self.run(query, index, max_results, category).hits)

    def get_search_suggestions(
        self,
        query: Optional[str],
        index: ProductIndex,
        max_suggestions: int = 5,
    ) -> List[str]:
        """
        Return up to `max_suggestions` product titles for type-ahead.

        Titles starting with the query come first; any remaining slots are
        filled by products whose category or product type starts with it.
        Queries shorter than two characters yield nothing.
        """
        term = normalize_query(query)
        if len(term) < MIN_SUGGESTION_LENGTH or max_suggestions <= 0:
            return []

        title_matches = [
            entry.product.title
            for entry in index.entries
            if entry.title.startswith(term)
        ][:max_suggestions]

        remaining = max_suggestions - len(title_matches)
        if remaining <= 0:
            return title_matches

        category_matches = [
            entry.product.title
            for entry in index.entries
            if not entry.title.startswith(term)
            and (entry.category.startswith(term) or entry.product_type.startswith(term))
        ][:remaining]

        return title_matches + category_matches

    def pre_warm_cache(
        self,
        queries: Iterable[str],
        index: ProductIndex,
        limit: int = 50,
    ) -> int:
        """
        Run each query once so later identical requests hit the cache.

        Returns the number of queries warmed.
        """
        warmed = 0
        for query in queries:
            if normalize_query(query):
                self.run(query, index, limit)
                warmed += 1
        return warmed
