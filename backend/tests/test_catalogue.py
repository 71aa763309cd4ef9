from florist.models.product import Product, ProductVariant
from florist.repositories.product_repo import ProductRepository
from florist.services.pricing import CustomRangePricing, FixedPricing, Variant, VariantPricing


def test_list_products_with_display_price(client, catalogue):
    res = client.get("/api/products")
    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 3
    labels = {p["name"]: p["display_price_label"] for p in body["items"]}
    assert labels["Rose rouge"] == "10.00 €"
    assert labels["Bouquet champêtre"] == "from 25.00 €"
    assert labels["Composition sur mesure"] == "from 30.00 €"


def test_list_products_filters(client, catalogue):
    body = client.get("/api/products", params={"category": "bouquets"}).json()
    assert [p["name"] for p in body["items"]] == ["Bouquet champêtre"]
    body = client.get("/api/products", params={"q": "rose"}).json()
    assert body["total"] == 1


def test_get_product_includes_variants(client, catalogue):
    res = client.get(f"/api/products/{catalogue['bouquet']}")
    assert res.status_code == 200
    body = res.json()
    assert body["pricing_type"] == "variants"
    assert [v["name"] for v in body["variants"]] == ["Petit", "Moyen", "Grand"]
    assert body["display_price_cents"] == 2500


def test_get_unknown_product(client):
    res = client.get("/api/products/12345")
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "PRODUCT_NOT_FOUND"


def test_admin_create_product(client):
    payload = {
        "name": "Orchidée blanche",
        "category": "plantes",
        "pricing": {
            "pricing_type": "variants",
            "variants": [
                {"name": "Une tige", "price_cents": 3900},
                {"name": "Deux tiges", "price_cents": 5900},
            ],
        },
    }
    res = client.post("/api/admin/products", json=payload)
    assert res.status_code == 201
    body = res.json()
    assert body["pricing_type"] == "variants"
    assert body["price_cents"] is None
    assert [v["position"] for v in body["variants"]] == [0, 1]
    assert body["display_price_label"] == "from 39.00 €"


def test_admin_create_rejects_bad_range(client):
    payload = {
        "name": "Composition",
        "pricing": {"pricing_type": "custom_range", "min_price_cents": 5000, "max_price_cents": 4000},
    }
    res = client.post("/api/admin/products", json=payload)
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INVALID_PRICING"


def test_admin_create_rejects_unknown_pricing_type(client):
    payload = {"name": "Composition", "pricing": {"pricing_type": "auction", "price_cents": 10}}
    assert client.post("/api/admin/products", json=payload).status_code == 422


def test_switching_pricing_clears_other_payloads(client, db, catalogue):
    res = client.put(
        f"/api/admin/products/{catalogue['bouquet']}/pricing",
        json={"pricing": {"pricing_type": "fixed", "price_cents": 3000}},
    )
    assert res.status_code == 200
    body = res.json()
    assert body["pricing_type"] == "fixed"
    assert body["price_cents"] == 3000
    assert body["variants"] == []
    assert db.query(ProductVariant).filter(ProductVariant.product_id == catalogue["bouquet"]).count() == 0

    res = client.put(
        f"/api/admin/products/{catalogue['bouquet']}/pricing",
        json={"pricing": {"pricing_type": "custom_range", "min_price_cents": 2000, "max_price_cents": 8000}},
    )
    body = res.json()
    assert body["price_cents"] is None
    assert (body["min_price_cents"], body["max_price_cents"]) == (2000, 8000)


def test_repository_set_pricing_keeps_one_payload(db):
    repo = ProductRepository(db)
    p = repo.create(name="Pivoine", pricing=CustomRangePricing(min_price_cents=1000, max_price_cents=2000))
    db.commit()

    repo.set_pricing(p, VariantPricing(variants=(Variant(id="", name="Botte", price_cents=1800),)))
    db.commit()
    p = db.get(Product, p.id)
    assert p.min_price_cents is None and p.max_price_cents is None
    assert len(p.variants) == 1

    repo.set_pricing(p, FixedPricing(price_cents=1500))
    db.commit()
    p = db.get(Product, p.id)
    assert p.variants == []
    assert p.pricing == FixedPricing(price_cents=1500)
