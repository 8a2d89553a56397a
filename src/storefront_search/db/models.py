"""
SQLAlchemy Models

Defines the read-only view of the product cache table that the external
Shopify sync keeps populated. The search layer never writes to it.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import DateTime, Numeric, Text
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Product Cache Model
# ---------------------------------------------------------------------

class ProductCacheRow(Base):
    """
    One synced catalog product.

    Column names mirror the cache table written by the catalog sync job.
    """
    __tablename__ = settings.products_table

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    handle: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    product_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    vendor: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    collection_handles: Mapped[Optional[List[str]]] = mapped_column(ARRAY(Text), nullable=True)
    tags: Mapped[Optional[List[str]]] = mapped_column(ARRAY(Text), nullable=True)
    variants: Mapped[Optional[Any]] = mapped_column(JSONB, nullable=True)
    data: Mapped[Optional[Any]] = mapped_column(JSONB, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def as_row(self) -> dict:
        """Return the columns the catalog normalizer consumes."""
        return {
            "id": self.id,
            "title": self.title,
            "price": self.price,
            "image": self.image,
            "handle": self.handle,
            "category": self.category,
            "product_type": self.product_type,
            "vendor": self.vendor,
            "collection_handles": self.collection_handles,
            "tags": self.tags,
            "data": self.data,
            "updated_at": self.updated_at,
        }
