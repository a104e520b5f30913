"""Tests for the catalog service."""

import asyncio
from decimal import Decimal

import pytest

from storefront.errors import PartialFanoutFailure, PersistenceError
from storefront.models.product import Product, ProductCreateRequest
from storefront.services.product_service import ProductService, dedupe_by_color_group, slugify


class TestCreateProduct:
    def test_single_product(self, db):
        request = ProductCreateRequest(name="Thunderbolt Dock", price=Decimal(9000), stock_quantity=4,
                                       specs=[{"label": "Ports", "value": "12"}])
        ids = asyncio.run(ProductService(db).create_product(request))

        assert len(ids) == 1
        row = db.rows("products")[0]
        assert row["slug"] == "thunderbolt-dock"
        assert row["stock_quantity"] == 4
        assert [s["product_id"] for s in db.rows("product_specs")] == ids

    def test_color_group(self, db):
        request = ProductCreateRequest(
            name="Oxford Shirt",
            sku="shirt",
            price=Decimal(1200),
            stock_quantity=6,
            variants=[{"color_name": "Navy Blue", "color_hex": "#001f3f"}, {"color_name": "White", "stock_quantity": 2}],
            specs=[{"label": "Fabric", "value": "Cotton"}, {"label": "Fit", "value": "Slim"}],
        )
        ids = asyncio.run(ProductService(db).create_product(request))

        rows = {r["id"]: r for r in db.rows("products")}
        assert len(ids) == 3
        base = rows[ids[0]]
        assert base["color_name"] is None
        assert {r["color_group_id"] for r in rows.values()} == {ids[0]}
        assert sorted(r["slug"] for r in rows.values()) == [
            "oxford-shirt", "oxford-shirt-navy-blue", "oxford-shirt-white"
        ]
        assert rows[ids[1]]["sku"] == "shirt-NAVY-BLUE"
        assert {r["color_name"]: r["stock_quantity"] for r in rows.values()} == {None: 6, "Navy Blue": 6, "White": 2}
        assert len(db.rows("product_specs")) == 6

    def test_specs_failure_removes_group(self, db):
        db.fail_next("insert", "product_specs")
        request = ProductCreateRequest(name="Oxford Shirt", price=Decimal(1200), stock_quantity=6,
                                       variants=[{"color_name": "White"}],
                                       specs=[{"label": "Fabric", "value": "Cotton"}])
        with pytest.raises(PersistenceError):
            asyncio.run(ProductService(db).create_product(request))
        assert db.rows("products") == []

    def test_specs_failure_with_failed_cleanup(self, db):
        db.fail_next("insert", "product_specs")
        db.fail_next("delete", "products")
        request = ProductCreateRequest(name="Thunderbolt Dock", price=Decimal(9000),
                                       specs=[{"label": "Ports", "value": "12"}])
        with pytest.raises(PartialFanoutFailure) as exc_info:
            asyncio.run(ProductService(db).create_product(request))
        assert exc_info.value.created_ids == [db.rows("products")[0]["id"]]


class TestCatalogReads:
    def test_get_products_skips_inactive(self, db, product):
        db.seed("products", name="Old", slug="old", price=1, is_active=False)
        products = asyncio.run(ProductService(db).get_products([product["id"], "nope"]))
        assert list(products) == [product["id"]]
        assert products[product["id"]].price == Decimal(500)

    def test_dedupe_prefers_base(self):
        variant = Product(id="2", color_group_id="1", color_name="Red")
        base = Product(id="1", color_group_id="1")
        lone = Product(id="3")
        assert [p.id for p in dedupe_by_color_group([variant, lone, base])] == ["1", "3"]

    def test_slugify(self):
        assert slugify("  USB-C Hub (7-in-1) ") == "usb-c-hub-7-in-1"
