"""
Database Catalog Tests

Model construction and the database catalog source, with the async session
replaced by mocks so no database is needed.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from storefront_search.catalog.source import CatalogUnavailableError, DatabaseCatalogSource
from storefront_search.config import settings
from storefront_search.db.models import ProductCacheRow
from storefront_search.tenants import resolve_tenant


def _session_factory(session):
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    factory.return_value.__aexit__.return_value = False
    return factory


class TestProductCacheRow:
    def test_table_name_from_settings(self):
        assert ProductCacheRow.__tablename__ == settings.products_table

    def test_as_row(self):
        row = ProductCacheRow(
            id="gid://shopify/Product/1",
            title="Coors Light",
            price=Decimal("12.00"),
            collection_handles=["beer"],
            data={"vendor": "Coors"},
        )

        data = row.as_row()

        assert data["id"] == "gid://shopify/Product/1"
        assert data["collection_handles"] == ["beer"]
        assert data["data"] == {"vendor": "Coors"}
        assert data["category"] is None


class TestDatabaseCatalogSource:
    @pytest.mark.asyncio
    async def test_fetch_normalizes_rows_in_table_order(self):
        rows = [
            ProductCacheRow(id="2", title="Lone Star", product_type="Beer"),
            ProductCacheRow(id="1", title="Coors Light", price=Decimal("12")),
        ]
        result = MagicMock()
        result.scalars.return_value.all.return_value = rows
        session = AsyncMock()
        session.execute.return_value = result

        source = DatabaseCatalogSource(session_factory=_session_factory(session))
        products = await source.fetch_products(resolve_tenant("lake-party"))

        assert [p.id for p in products] == ["2", "1"]
        assert products[0].category == "Beer"
        assert products[1].price == Decimal("12")
        session.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_database_errors_become_catalog_unavailable(self):
        session = AsyncMock()
        session.execute.side_effect = OperationalError(
            "SELECT", {}, ConnectionRefusedError("connection refused")
        )

        source = DatabaseCatalogSource(session_factory=_session_factory(session))

        with pytest.raises(CatalogUnavailableError, match="OperationalError"):
            await source.fetch_products(resolve_tenant("lake-party"))
