"""
Database Session Management

Provides async SQLAlchemy engine and session factory for the catalog
database (PostgreSQL).

Catalog reads happen inside background refresh tasks as well as request
handlers, so callers open their own short-lived session per fetch instead of
receiving one through a request-scoped dependency.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)

from ..config import settings


# Create async engine
async_engine = create_async_engine(
    settings.database_url,
    echo=False,  # Set True for SQL debugging
    pool_pre_ping=True,
    pool_size=5,
    max_overflow=10,
)

# Session factory
AsyncSessionLocal = async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def dispose_engine() -> None:
    """
    Close all pooled connections. Called on application shutdown.
    """
    await async_engine.dispose()
