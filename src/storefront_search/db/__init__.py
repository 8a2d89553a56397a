"""
Database Package

Provides SQLAlchemy async session management and the read-only product
cache model.
"""

from .session import async_engine, AsyncSessionLocal, dispose_engine
from .models import Base, ProductCacheRow

__all__ = [
    "dispose_engine",
    "async_engine",
    "AsyncSessionLocal",
    "Base",
    "ProductCacheRow",
]
