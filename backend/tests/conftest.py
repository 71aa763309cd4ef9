import os
import tempfile

# settings are read at import time, so the environment is prepared first
_tmp = tempfile.mkdtemp(prefix="florist-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp, 'test.db')}"
os.environ["PAYMENT_ADAPTER"] = "mock"
os.environ["NOTIFIER"] = "mock"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient

from florist.adapters.mock_notifier import MockNotifier
from florist.adapters.mock_payment import MockPaymentAdapter
from florist.adapters.registry import get_notifier, get_payment_gateway
from florist.db import SessionLocal, init_db
from florist.main import app
from florist.repositories.product_repo import ProductRepository
from florist.services.pricing import CustomRangePricing, FixedPricing, Variant, VariantPricing

CUSTOMER = {"name": "Camille Martin", "email": "camille@example.com", "phone": "0601020304"}
DELIVERY = {
    "type": "delivery",
    "address": {"street": "12 rue des Lilas", "city": "Lyon", "zip_code": "69003"},
    "date": "2030-05-14",
    "time_slot": "9h-13h",
}


@pytest.fixture(autouse=True)
def fresh_db():
    init_db(reset=True)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return MockPaymentAdapter(webhook_secret="whsec_test")


@pytest.fixture
def notifier():
    return MockNotifier()


@pytest.fixture
def client(gateway, notifier):
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def catalogue(db):
    """One product per pricing mode; returns their ids."""
    repo = ProductRepository(db)
    rose = repo.create(name="Rose rouge", pricing=FixedPricing(price_cents=1000), category="fleurs")
    bouquet = repo.create(
        name="Bouquet champêtre",
        pricing=VariantPricing(
            variants=(
                Variant(id="", name="Petit", price_cents=2500, position=0),
                Variant(id="", name="Moyen", price_cents=3500, position=1),
                Variant(id="", name="Grand", price_cents=4500, position=2, is_active=False),
            )
        ),
        category="bouquets",
    )
    custom = repo.create(
        name="Composition sur mesure",
        pricing=CustomRangePricing(min_price_cents=3000, max_price_cents=15000),
        category="compositions",
    )
    db.commit()
    variants = {v.name: str(v.id) for v in bouquet.variants}
    return {"rose": rose.id, "bouquet": bouquet.id, "custom": custom.id, "variants": variants}


def order_payload(items, total=None, **extra):
    body = {
        "customer_info": dict(CUSTOMER),
        "delivery_info": dict(DELIVERY),
        "items": items,
        "total_amount_cents": total if total is not None else sum(i["unit_price_cents"] * i["quantity"] for i in items),
    }
    body.update(extra)
    return body
