from decimal import Decimal

from conftest import ADMIN_TOKEN

from storefront import crud, models, schemas
from storefront.seed import CATEGORIES, PRODUCTS, seed_catalog


def test_price_range_filter_is_inclusive(db, make_product):
    for price in ("99.99", "100.00", "150.00", "200.00", "200.01"):
        make_product(price=price)

    products = crud.get_products(db, schemas.ProductFilter(min_price="100.00", max_price="200.00"))
    assert sorted(p.price for p in products) == [Decimal("100.00"), Decimal("150.00"), Decimal("200.00")]


def test_price_range_over_http(client, make_product):
    for price in ("50.00", "100.00", "200.00"):
        make_product(price=price)

    response = client.get("/api/products", params={"min_price": "100", "max_price": "200", "sort_by": "price-asc"})
    assert response.status_code == 200
    assert [p["price"] for p in response.json()] == ["100.00", "200.00"]


def test_unknown_category_yields_empty_list(client, make_product):
    make_product()
    response = client.get("/api/products", params={"category_slug": "tiaras"})
    assert response.status_code == 200
    assert response.json() == []


def test_filters_and_sorting(db, make_product):
    make_product(name="Bravo", price="300.00", material="Platinum")
    make_product(name="Alpha", price="100.00", material="Gold", in_stock=False)
    make_product(name="Charlie", price="200.00", material="Gold", is_featured=True)

    by_name = crud.get_products(db, schemas.ProductFilter(sort_by="name"))
    assert [p.name for p in by_name] == ["Alpha", "Bravo", "Charlie"]

    gold_in_stock = crud.get_products(db, schemas.ProductFilter(material="Gold", in_stock=True))
    assert [p.name for p in gold_in_stock] == ["Charlie"]

    cheapest = crud.get_products(db, schemas.ProductFilter(sort_by="price-asc", limit=1, offset=1))
    assert [p.name for p in cheapest] == ["Charlie"]


def test_search_is_case_insensitive_substring(client, make_product):
    make_product(name="Emerald Drop Pendant", gemstone="Colombian Emerald")
    make_product(name="Pearl Strand")

    response = client.get("/api/products/search", params={"q": "EMERALD"})
    assert [p["name"] for p in response.json()] == ["Emerald Drop Pendant"]


def test_search_falls_back_to_fuzzy_ranking(client, make_product):
    make_product(name="Sapphire Halo Ring", description="Ceylon blue stone")
    make_product(name="Pearl Strand", description="Akoya pearls")

    response = client.get("/api/products/search", params={"q": "saphire"})
    assert [p["name"] for p in response.json()] == ["Sapphire Halo Ring"]

    suggestions = client.get("/api/products/search/suggestions", params={"prefix": "sap"}).json()
    assert suggestions == [{"query": "saphire", "frequency": 1, "result_count": 1}]


def test_search_rejects_disallowed_characters(client):
    response = client.get("/api/products/search", params={"q": "<script>"})
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"
    assert response.json()["field"] == "q"


def test_product_by_slug_includes_category(client, make_product):
    make_product(slug="eternal-ring")
    body = client.get("/api/products/eternal-ring").json()
    assert body["slug"] == "eternal-ring"
    assert body["category"]["slug"] == "rings"

    missing = client.get("/api/products/nope")
    assert missing.status_code == 404
    assert missing.json()["message"] == "Product not found"


def test_categories(client, category):
    assert [c["slug"] for c in client.get("/api/categories").json()] == ["rings"]
    assert client.get("/api/categories/rings").json()["name"] == "Rings"
    assert client.get("/api/categories/tiaras").status_code == 404


def test_featured_and_new_arrivals(client, make_product):
    make_product(name="Featured", is_featured=True)
    make_product(name="New", is_new_arrival=True)

    assert [p["name"] for p in client.get("/api/products/featured").json()] == ["Featured"]
    assert [p["name"] for p in client.get("/api/products/new-arrivals").json()] == ["New"]


def test_admin_writes_require_token(client, category):
    body = {"slug": "ring", "name": "Ring", "description": "A ring", "price": "10.00"}
    assert client.post("/api/products", json=body).status_code == 403
    assert client.post("/api/products", json=body, headers={"X-Admin-Token": "wrong"}).status_code == 403


def test_admin_product_lifecycle(client, category):
    headers = {"X-Admin-Token": ADMIN_TOKEN}
    body = {"slug": "ring", "name": "Ring", "description": "A ring", "price": "10.00", "category_id": category.id}

    created = client.post("/api/products", json=body, headers=headers)
    assert created.status_code == 201
    assert client.post("/api/products", json=body, headers=headers).status_code == 409

    product_id = created.json()["id"]
    updated = client.patch(f"/api/products/{product_id}", json={"price": "12.50", "slug": "renamed"}, headers=headers)
    assert updated.status_code == 200
    assert updated.json()["price"] == "12.50"
    assert updated.json()["slug"] == "ring"

    assert client.patch("/api/products/9999", json={"price": "1.00"}, headers=headers).status_code == 404
    assert client.patch(f"/api/products/{product_id}", json={"category_id": 9999}, headers=headers).status_code == 404


def test_seed_catalog_runs_once(db):
    assert seed_catalog(db) is True
    assert db.query(models.Category).count() == len(CATEGORIES)
    assert db.query(models.Product).count() == len(PRODUCTS)
    assert seed_catalog(db) is False
    assert db.query(models.Product).count() == len(PRODUCTS)


def test_search_analytics_admin_endpoints(client, make_product):
    make_product(name="Emerald Drop Pendant")
    for q in ("emerald", "emerald", "pearl"):
        client.get("/api/products/search", params={"q": q})

    assert client.get("/api/search/analytics").status_code == 403

    admin = {"X-Admin-Token": ADMIN_TOKEN}
    analytics = client.get("/api/search/analytics", params={"limit": 1}, headers=admin).json()
    assert analytics == {
        "total_searches": 3,
        "unique_queries": 2,
        "top_queries": [{"query": "emerald", "count": 2}],
    }

    assert client.delete("/api/search/analytics", params={"days_old": 30}, headers=admin).json() == {"removed": 0}
    assert client.delete("/api/search/analytics", params={"days_old": 0}, headers=admin).json() == {"removed": 3}
    assert client.get("/api/search/analytics", headers=admin).json()["total_searches"] == 0
