from conftest import start_checkout


def place_order(client, product):
    client.post("/api/cart", json={"product_id": product.id, "quantity": 1})
    return start_checkout(client)["order_id"]


def test_user_cannot_read_another_users_order(alice, bob, make_product):
    order_id = place_order(alice, make_product())

    response = bob.get(f"/api/orders/{order_id}")
    assert response.status_code == 404
    assert response.json()["code"] == "ORDER_NOT_FOUND"
    # same answer as an id that does not exist
    assert bob.get("/api/orders/99999").json()["message"] == response.json()["message"]

    assert alice.get(f"/api/orders/{order_id}").status_code == 200


def test_order_history_is_per_user_newest_first(alice, bob, make_product):
    first = place_order(alice, make_product())
    second = place_order(alice, make_product())
    place_order(bob, make_product())

    orders = alice.get("/api/orders").json()
    assert [o["id"] for o in orders] == [second, first]
    assert all(o["status"] == "pending" for o in orders)


def test_order_detail_includes_items_and_address(alice, make_product):
    order_id = place_order(alice, make_product(name="Ruby Drop Earrings", price="8200.00"))
    order = alice.get(f"/api/orders/{order_id}").json()

    assert order["shipping_address"]["city"] == "London"
    assert [(i["product"]["name"], i["quantity"], i["price_at_purchase"]) for i in order["items"]] == [
        ("Ruby Drop Earrings", 1, "8200.00"),
    ]


def test_orders_require_login(client):
    assert client.get("/api/orders").status_code == 401


def test_pagination_bounds(alice):
    assert alice.get("/api/orders", params={"limit": 101}).status_code == 400
    assert alice.get("/api/orders", params={"skip": -1}).status_code == 400
