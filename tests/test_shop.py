from __future__ import annotations

import pytest

from zonta.extensions import db
from zonta.models import Product


def test_lists_only_active_products(client, make_product):
    make_product(name="Rose Tote", status="active")
    make_product(name="Draft Mug", status="draft")
    make_product(name="Old Print", status="archived")

    body = client.get("/api/products").get_json()
    assert body["ok"] is True
    assert [p["name"] for p in body["data"]] == ["Rose Tote"]


def test_filters_and_sorting(client, make_product):
    make_product(name="Yellow Tee", category="Apparel", price_cents=3000, description="Cotton tee.")
    make_product(name="Rose Tote", category="Accessories", price_cents=1500, featured=True)
    make_product(name="Rose Mug", category="Home & Garden", price_cents=1200, description="Holds coffee.")

    apparel = client.get("/api/products?category=Apparel").get_json()
    assert [p["name"] for p in apparel["data"]] == ["Yellow Tee"]

    featured = client.get("/api/products?featured=true").get_json()
    assert [p["name"] for p in featured["data"]] == ["Rose Tote"]

    search = client.get("/api/products?search=rose").get_json()
    assert sorted(p["name"] for p in search["data"]) == ["Rose Mug", "Rose Tote"]

    by_desc = client.get("/api/products?search=coffee").get_json()
    assert [p["name"] for p in by_desc["data"]] == ["Rose Mug"]

    cheapest = client.get("/api/products?sort=price").get_json()
    assert [p["priceCents"] for p in cheapest["data"]] == [1200, 1500, 3000]


def test_featured_endpoint(client, make_product):
    make_product(name="Rose Tote", featured=True)
    make_product(name="Hidden Pin", featured=True, status="draft")
    make_product(name="Plain Mug")

    body = client.get("/api/products/featured").get_json()
    assert [p["name"] for p in body["data"]] == ["Rose Tote"]


def test_categories_count_active_products(client, make_product):
    make_product(name="A", category="Apparel")
    make_product(name="B", category="Apparel")
    make_product(name="C", category="Books")
    make_product(name="D", category="Books", status="draft")

    body = client.get("/api/products/categories").get_json()
    assert body["data"] == [{"category": "Apparel", "count": 2}, {"category": "Books", "count": 1}]


def test_detail_by_id_or_slug_counts_views(client, make_product):
    product = make_product(name="Rose Tote")
    assert product.slug == "rose-tote"

    first = client.get(f"/api/products/{product.id}")
    assert first.status_code == 200
    assert first.get_json()["data"]["views"] == 1

    second = client.get("/api/products/rose-tote")
    assert second.status_code == 200
    assert second.get_json()["data"]["views"] == 2

    db.session.expire_all()
    assert db.session.get(Product, product.id).views == 2


def test_unknown_product_is_404(client):
    resp = client.get("/api/products/no-such-thing")
    assert resp.status_code == 404
    body = resp.get_json()
    assert body["ok"] is False
    assert body["error"]["message"] == "Product not found"


@pytest.mark.parametrize("ref", ["%C2%B2", "99999999999999999999"])
def test_unicode_or_oversized_numeric_id_is_404(client, make_product, ref):
    make_product()
    resp = client.get(f"/api/products/{ref}")
    assert resp.status_code == 404
    assert resp.get_json()["error"]["message"] == "Product not found"
