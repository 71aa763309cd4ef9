from datetime import datetime, timedelta, timezone

import pytest

from florist.errors import (
    InvalidQuantity,
    ItemNotFound,
    PriceOutOfRange,
    ProductInactive,
    ProductNotFound,
    QuantityLimitExceeded,
    ValidationError,
    VariantInactive,
    VariantNotFound,
)
from florist.models.product import Product
from florist.services.cart_service import CartOwner, CartService
from florist.services.pricing import VariantSelector

GUEST = CartOwner(session_id="guest-token-1")


def _assert_totals(cart):
    assert cart.total_items == sum(it.quantity for it in cart.items)
    assert cart.total_amount_cents == sum(it.unit_price_cents * it.quantity for it in cart.items)


# --- service ---


def test_add_same_product_twice_accumulates(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["rose"], quantity=2)
    assert cart.total_amount_cents == 2000
    assert cart.total_items == 2

    svc.add_item(cart, catalogue["rose"], quantity=3)
    assert len(cart.items) == 1
    assert cart.items[0].quantity == 5
    assert cart.total_amount_cents == 5000
    assert cart.total_items == 5


def test_different_variants_are_distinct_lines(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["bouquet"], selector=VariantSelector(variant_name="Petit"))
    svc.add_item(cart, catalogue["bouquet"], selector=VariantSelector(variant_name="Moyen"))
    svc.add_item(cart, catalogue["bouquet"], selector=VariantSelector(variant_id=catalogue["variants"]["Petit"]))
    assert len(cart.items) == 2
    by_name = {it.variant_name: it for it in cart.items}
    assert by_name["Petit"].quantity == 2
    assert by_name["Moyen"].quantity == 1
    assert cart.total_amount_cents == 2 * 2500 + 3500
    _assert_totals(cart)


def test_variant_selected_by_index_lands_on_same_line(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["bouquet"], selector=VariantSelector(variant_index=1))
    svc.add_item(cart, catalogue["bouquet"], selector=VariantSelector(variant_name="Moyen"))
    assert len(cart.items) == 1
    assert cart.items[0].variant_id == catalogue["variants"]["Moyen"]
    assert cart.items[0].quantity == 2


def test_inactive_variant_is_rejected(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    with pytest.raises(VariantInactive):
        svc.add_item(cart, catalogue["bouquet"], selector=VariantSelector(variant_name="Grand"))
    with pytest.raises(VariantNotFound):
        svc.add_item(cart, catalogue["bouquet"])
    assert cart.is_empty


def test_custom_range_uses_explicit_price(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["custom"], explicit_price_cents=4200)
    assert cart.items[0].unit_price_cents == 4200
    with pytest.raises(PriceOutOfRange):
        svc.add_item(cart, catalogue["custom"], explicit_price_cents=20000)


def test_missing_or_inactive_product(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    with pytest.raises(ProductNotFound):
        svc.add_item(cart, 9999)
    db.get(Product, catalogue["rose"]).is_active = False
    db.commit()
    with pytest.raises(ProductInactive):
        svc.add_item(cart, catalogue["rose"])


@pytest.mark.parametrize("quantity,error", [(0, InvalidQuantity), (-1, InvalidQuantity), (51, QuantityLimitExceeded)])
def test_add_rejects_quantity_out_of_bounds(db, catalogue, quantity, error):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    with pytest.raises(error) as exc:
        svc.add_item(cart, catalogue["rose"], quantity=quantity)
    assert "between 1 and 50" in exc.value.message


def test_accumulating_past_limit_is_rejected_and_line_unchanged(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["rose"], quantity=45)
    with pytest.raises(QuantityLimitExceeded):
        svc.add_item(cart, catalogue["rose"], quantity=6)
    db.expire_all()
    cart = svc.find_for(GUEST)
    assert cart.items[0].quantity == 45
    svc.add_item(cart, catalogue["rose"], quantity=5)
    assert cart.items[0].quantity == 50


def test_update_quantity(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["rose"], quantity=2)
    svc.add_item(cart, catalogue["bouquet"], selector=VariantSelector(variant_name="Moyen"))

    svc.update_quantity(cart, catalogue["rose"], 7)
    svc.update_quantity(cart, catalogue["bouquet"], 3, variant_id=catalogue["variants"]["Moyen"])
    assert cart.total_items == 10
    assert cart.total_amount_cents == 7 * 1000 + 3 * 3500
    _assert_totals(cart)


def test_update_quantity_by_variant_name(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["bouquet"], selector=VariantSelector(variant_name="Petit"))
    svc.update_quantity(cart, catalogue["bouquet"], 4, selector=VariantSelector(variant_name="Petit"))
    assert cart.items[0].quantity == 4


@pytest.mark.parametrize("quantity,error", [(0, InvalidQuantity), (-3, InvalidQuantity), (51, QuantityLimitExceeded)])
def test_update_quantity_bounds(db, catalogue, quantity, error):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["rose"])
    with pytest.raises(error):
        svc.update_quantity(cart, catalogue["rose"], quantity)
    assert cart.items[0].quantity == 1


def test_update_missing_line(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["bouquet"], selector=VariantSelector(variant_name="Petit"))
    with pytest.raises(ItemNotFound):
        svc.update_quantity(cart, catalogue["rose"], 2)
    with pytest.raises(ItemNotFound):
        svc.update_quantity(cart, catalogue["bouquet"], 2, variant_id=catalogue["variants"]["Moyen"])


def test_remove_is_idempotent(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["rose"], quantity=2)
    svc.add_item(cart, catalogue["custom"], explicit_price_cents=5000)

    svc.remove_item(cart, catalogue["rose"])
    svc.remove_item(cart, catalogue["rose"])
    assert len(cart.items) == 1
    assert cart.total_amount_cents == 5000
    _assert_totals(cart)


def test_remove_accepts_positional_id_and_name(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["bouquet"], quantity=3, selector=VariantSelector(variant_name="Petit"))
    svc.add_item(cart, catalogue["bouquet"], selector=VariantSelector(variant_name="Moyen"))

    svc.remove_item(cart, catalogue["bouquet"], "variant_0_petit")
    assert [it.variant_name for it in cart.items] == ["Moyen"]
    svc.remove_item(cart, catalogue["bouquet"], selector=VariantSelector(variant_name="Moyen"))
    assert cart.is_empty
    assert cart.total_items == 0


def test_clear_items_zeroes_totals(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["rose"], quantity=3)
    svc.clear_items(cart)
    assert cart.is_empty
    assert cart.total_items == 0
    assert cart.total_amount_cents == 0


def test_totals_hold_after_mixed_mutations(db, catalogue):
    svc = CartService(db)
    cart = svc.find_or_create(GUEST)
    svc.add_item(cart, catalogue["rose"], quantity=4)
    svc.add_item(cart, catalogue["bouquet"], quantity=2, selector=VariantSelector(variant_index=0))
    svc.add_item(cart, catalogue["custom"], explicit_price_cents=3333)
    _assert_totals(cart)
    svc.update_quantity(cart, catalogue["rose"], 1)
    _assert_totals(cart)
    svc.remove_item(cart, catalogue["bouquet"], catalogue["variants"]["Petit"])
    _assert_totals(cart)
    assert cart.total_amount_cents == 1000 + 3333


def test_lookups_and_owner_precedence(db, catalogue):
    svc = CartService(db)
    assert svc.find_by_user("u-1") is None
    assert svc.find_by_session("s-1") is None

    guest_cart = svc.find_or_create(CartOwner(session_id="s-1"))
    svc.add_item(guest_cart, catalogue["rose"])

    # once authenticated, the user's own cart is used; the guest cart is left alone
    user_cart = svc.find_or_create(CartOwner(user_id="u-1", session_id="s-1"))
    assert user_cart.id != guest_cart.id
    assert user_cart.is_empty
    assert svc.find_by_user("u-1").id == user_cart.id
    assert svc.find_by_session("s-1").total_items == 1


def test_find_or_create_requires_identity(db):
    with pytest.raises(ValidationError):
        CartService(db).find_or_create(CartOwner())


def test_clean_expired_carts(db, catalogue):
    svc = CartService(db)
    old = svc.find_or_create(CartOwner(session_id="old"))
    svc.find_or_create(CartOwner(session_id="recent"))
    db.commit()
    old.expires_at = datetime.now(timezone.utc) - timedelta(days=1)
    db.commit()

    assert svc.clean_expired_carts() == 1
    assert svc.find_by_session("old") is None
    assert svc.find_by_session("recent") is not None


# --- API ---


def test_guest_add_sets_session_cookie(client, catalogue):
    res = client.post("/api/cart", json={"product_id": catalogue["rose"], "quantity": 2})
    assert res.status_code == 200
    assert "cart_session" in res.cookies
    body = res.json()
    assert body["total_items"] == 2
    assert body["total_amount_cents"] == 2000

    res = client.post("/api/cart", json={"product_id": catalogue["rose"], "quantity": 3})
    body = res.json()
    assert len(body["items"]) == 1
    assert body["items"][0]["quantity"] == 5
    assert body["total_amount_cents"] == 5000

    assert client.get("/api/cart").json()["total_items"] == 5


def test_get_cart_without_identity_is_empty(client):
    body = client.get("/api/cart").json()
    assert body == {"items": [], "total_items": 0, "total_amount_cents": 0, "is_empty": True}


def test_user_cart_via_header(client, catalogue):
    headers = {"X-User-Id": "user-42"}
    res = client.post(
        "/api/cart",
        json={"product_id": catalogue["bouquet"], "variant_name": "Moyen"},
        headers=headers,
    )
    assert res.status_code == 200
    assert "cart_session" not in res.cookies
    assert client.get("/api/cart", headers=headers).json()["total_amount_cents"] == 3500


def test_api_errors_are_actionable(client, catalogue):
    res = client.post("/api/cart", json={"product_id": catalogue["rose"], "quantity": 60})
    assert res.status_code == 400
    err = res.json()["error"]
    assert err["code"] == "QUANTITY_LIMIT_EXCEEDED"
    assert "between 1 and 50" in err["message"]

    res = client.post("/api/cart", json={"product_id": catalogue["rose"], "quantity": 0})
    assert res.json()["error"]["code"] == "INVALID_QUANTITY"

    res = client.post("/api/cart", json={"product_id": catalogue["bouquet"], "variant_name": "Géant"})
    assert res.status_code == 400
    assert res.json()["error"]["code"] == "VARIANT_NOT_FOUND"

    res = client.post("/api/cart", json={"product_id": 9999})
    assert res.status_code == 404
    assert res.json()["success"] is False


def test_api_update_remove_clear(client, catalogue):
    client.post("/api/cart", json={"product_id": catalogue["rose"]})
    client.post("/api/cart", json={"product_id": catalogue["bouquet"], "variant_index": 0})

    res = client.put(f"/api/cart/{catalogue['rose']}", json={"quantity": 4})
    assert res.status_code == 200
    assert res.json()["total_items"] == 5

    res = client.put(f"/api/cart/{catalogue['rose']}", json={"quantity": 0})
    assert res.status_code == 400

    petit = catalogue["variants"]["Petit"]
    res = client.delete(f"/api/cart/{catalogue['bouquet']}", params={"variant_id": petit})
    assert res.json()["total_items"] == 4
    res = client.delete(f"/api/cart/{catalogue['bouquet']}", params={"variant_id": petit})
    assert res.status_code == 200
    assert res.json()["total_items"] == 4

    res = client.post("/api/cart/clear")
    assert res.json()["is_empty"] is True


def test_api_remove_by_variant_name(client, catalogue):
    client.post("/api/cart", json={"product_id": catalogue["bouquet"], "variant_name": "Petit", "quantity": 2})
    client.post("/api/cart", json={"product_id": catalogue["bouquet"], "variant_index": 1})

    res = client.delete(f"/api/cart/{catalogue['bouquet']}", params={"variant_name": "Petit"})
    assert res.status_code == 200
    assert res.json()["total_items"] == 1
    res = client.delete(f"/api/cart/{catalogue['bouquet']}", params={"variant_index": 1})
    assert res.json()["is_empty"] is True


def test_update_without_cart_is_not_found(client, catalogue):
    res = client.put(f"/api/cart/{catalogue['rose']}", json={"quantity": 2}, headers={"X-User-Id": "nobody"})
    assert res.status_code == 404
    assert res.json()["error"]["code"] == "CART_NOT_FOUND"
