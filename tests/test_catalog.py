"""
Catalog Normalization Tests

Rows from the product cache table are loosely shaped; Product.from_row must
resolve every fallback once so the search layer never has to.
"""

from decimal import Decimal

import pytest

from storefront_search.catalog.models import Product
from storefront_search.catalog.source import StaticCatalogSource, normalize_rows
from storefront_search.tenants import resolve_tenant


class TestProductFromRow:
    def test_minimal_row(self):
        product = Product.from_row({"id": 1, "title": "Coors Light", "price": 12})

        assert product.id == "1"
        assert product.title == "Coors Light"
        assert product.price == Decimal("12")
        assert product.collection_handles == ()
        assert product.category is None

    def test_category_falls_back_to_product_type(self):
        product = Product.from_row(
            {"id": "a", "title": "Lager", "product_type": "Beer"}
        )

        assert product.category == "Beer"
        assert product.product_type == "Beer"

    def test_explicit_category_wins(self):
        product = Product.from_row(
            {"id": "a", "title": "Lager", "category": "Spirits", "product_type": "Beer"}
        )

        assert product.category == "Spirits"
        assert product.product_type == "Beer"

    def test_collection_handles_from_comma_string(self):
        product = Product.from_row(
            {"id": "a", "title": "Lager", "collection_handles": "beer, party-packs ,"}
        )

        assert product.collection_handles == ("beer", "party-packs")

    def test_camel_case_and_nested_data(self):
        product = Product.from_row(
            {
                "id": "a",
                "title": "Lager",
                "collectionHandles": ["tailgate"],
                "data": {"vendor": "Coors", "productType": "Beer"},
            }
        )

        assert product.collection_handles == ("tailgate",)
        assert product.vendor == "Coors"
        assert product.product_type == "Beer"

    @pytest.mark.parametrize("raw", ["abc", None, "-3", "NaN"])
    def test_unparsable_price_defaults_to_zero(self, raw):
        product = Product.from_row({"id": "a", "title": "Lager", "price": raw})
        assert product.price == Decimal("0")

    def test_price_serializes_as_number(self):
        product = Product.from_row({"id": "a", "title": "Lager", "price": "12.50"})
        data = product.model_dump(mode="json", by_alias=True)

        assert data["price"] == 12.5
        assert "collectionHandles" in data


class TestNormalizeRows:
    def test_skips_rows_without_id(self):
        products = normalize_rows(
            [
                {"id": "1", "title": "Keep"},
                {"title": "No id"},
                {"id": "2", "title": "Also keep"},
            ]
        )

        assert [p.id for p in products] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_static_source_replace(self):
        source = StaticCatalogSource([{"id": "1", "title": "Old"}])
        tenant = resolve_tenant("lake-party")

        assert [p.title for p in await source.fetch_products(tenant)] == ["Old"]

        source.replace([{"id": "2", "title": "New"}])
        assert [p.title for p in await source.fetch_products(tenant)] == ["New"]
        assert source.fetch_count == 2
