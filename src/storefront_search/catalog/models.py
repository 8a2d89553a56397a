"""
Catalog Data Models

This module defines the canonical Product record consumed by the search
layer. Rows from the product cache table arrive loosely shaped (prices as
strings, collection handles as arrays or comma strings, category missing but
product_type present). All of that is resolved exactly once, in
`Product.from_row`, so no read site downstream needs fallback chains.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class Product(BaseModel):
    """
    A single storefront product, immutable from the search layer's view.

    Replaced wholesale on every catalog sync.
    """

    id: str = Field(..., min_length=1, description="Stable catalog identifier.")
    title: str = Field(default="", description="Display name.")
    price: Decimal = Field(default=Decimal("0"), ge=0)
    image: Optional[str] = None
    handle: Optional[str] = Field(default=None, description="URL slug.")
    category: Optional[str] = None
    product_type: Optional[str] = None
    vendor: Optional[str] = None
    collection_handles: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_serializer("price", when_used="json")
    def _serialize_price(self, price: Decimal) -> float:
        return float(price)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Product":
        """
        Normalize one catalog row into a Product.

        Accepts both snake_case columns and the camelCase shape used by the
        storefront clients. Nested Shopify payloads under `data` are only
        consulted for fields the row itself leaves empty.
        """
        data = row.get("data") or {}
        if not isinstance(data, Mapping):
            data = {}

        def pick(*names: str) -> Any:
            for source in (row, data):
                for name in names:
                    value = source.get(name)
                    if value not in (None, ""):
                        return value
            return None

        product_type = _clean_str(pick("product_type", "productType"))

        return cls(
            id=_clean_str(pick("id")),
            title=_clean_str(pick("title")) or "",
            price=_parse_price(pick("price")),
            image=_clean_str(pick("image")),
            handle=_clean_str(pick("handle")),
            category=_clean_str(pick("category")) or product_type,
            product_type=product_type,
            vendor=_clean_str(pick("vendor")),
            collection_handles=_parse_handles(
                pick("collection_handles", "collectionHandles", "collections")
            ),
            tags=_parse_handles(pick("tags")),
            updated_at=pick("updated_at", "updatedAt"),
        )


# ---------------------------------------------------------------------
# Normalization Helpers
# ---------------------------------------------------------------------

def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_price(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        price = Decimal(str(value).strip())
    except InvalidOperation:
        return Decimal("0")
    if not price.is_finite() or price < 0:
        return Decimal("0")
    return price


def _parse_handles(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        parts = value.split(",")
    else:
        parts = [str(v) for v in value if v is not None]
    return tuple(p.strip() for p in parts if p.strip())
