"""
API Models for the Search Service

This module defines all Pydantic models used for request/response validation
across the search, suggestion, and stats endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- camelCase on the wire, matching the storefront clients
- Explicit output contracts per action
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..catalog.models import Product
from ..config import settings
from ..search.engine import SearchHit


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


# ---------------------------------------------------------------------
# Search Models
# ---------------------------------------------------------------------

class SearchRequest(_WireModel):
    """
    Search / cache-control request payload.
    """
    query: Optional[str] = None
    category: Optional[str] = None
    limit: int = Field(
        default=settings.default_search_limit,
        ge=1,
        le=settings.max_search_limit,
    )
    action: Literal["search", "preload", "warm_cache"] = "search"


class ProductResult(Product):
    """
    A product as returned by search, with its ranking details attached.
    """
    score: int = Field(..., ge=0)
    matched_field: str

    @classmethod
    def from_hit(cls, hit: SearchHit) -> "ProductResult":
        return cls(
            **hit.product.model_dump(),
            score=hit.score,
            matched_field=hit.matched_field,
        )


class SearchResponse(_WireModel):
    """
    Response payload for the `search` action.
    """
    products: List[ProductResult] = Field(default_factory=list)
    total_found: int = Field(..., ge=0)
    query: str
    load_time: str
    from_cache: bool
    index_size: Optional[int] = Field(default=None, ge=0)


class CacheWarmResponse(_WireModel):
    """
    Response payload for the `preload` and `warm_cache` actions.
    """
    success: Literal[True] = True
    cached: int = Field(..., ge=0)
    load_time: str
    warmed_queries: int = Field(default=0, ge=0)


class SuggestionResponse(_WireModel):
    query: str
    suggestions: List[str] = Field(default_factory=list)


class CacheClearResponse(_WireModel):
    status: Literal["cleared"] = "cleared"
    app_slug: str


# ---------------------------------------------------------------------
# Stats Models
# ---------------------------------------------------------------------

class SearchStatsResponse(BaseModel):
    total_searches: int = Field(..., ge=0)
    average_ms: float = Field(..., ge=0)
    slow_threshold_ms: float
    slow_searches: List[Dict[str, Any]] = Field(default_factory=list)
    cached_queries: int = Field(..., ge=0)
    loaded_tenants: List[str] = Field(default_factory=list)
    background_refreshes: int = Field(..., ge=0)


def format_load_time(duration_ms: float) -> str:
    return f"{duration_ms:.2f}ms"
