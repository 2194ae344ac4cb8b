"""
Cart endpoints over HTTP.
"""


async def test_add_merge_and_list(client, make_user, make_product, auth_headers):
    user = await make_user()
    product = await make_product(price="50000", stock=5)
    headers = auth_headers(user)

    first = await client.post("/api/cart/items", json={"product_id": product.id, "quantity": 2}, headers=headers)
    second = await client.post("/api/cart/items", json={"product_id": product.id, "quantity": 1}, headers=headers)

    assert first.status_code == 201
    assert first.json()["message"] == "Item added to cart"
    assert second.json()["message"] == "Cart item quantity updated"
    assert second.json()["data"]["quantity"] == 3

    listing = (await client.get("/api/cart", headers=headers)).json()["data"]
    assert listing["total_carts"] == 1
    assert listing["carts"][0]["total_amount"] == 150000.0


async def test_stock_exceeded_envelope(client, make_user, make_product, auth_headers):
    user = await make_user()
    product = await make_product(stock=1)

    resp = await client.post(
        "/api/cart/items", json={"product_id": product.id, "quantity": 2}, headers=auth_headers(user)
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["code"] == "STOCK_EXCEEDED"
    assert body["data"]["available_qty"] == 1


async def test_update_remove_and_clear(client, make_user, make_product, auth_headers):
    user = await make_user()
    shirt = await make_product(name="Kemeja", stock=10)
    scarf = await make_product(name="Syal", stock=10)
    headers = auth_headers(user)
    added = (await client.post("/api/cart/items", json={"product_id": shirt.id}, headers=headers)).json()["data"]
    await client.post("/api/cart/items", json={"product_id": scarf.id, "quantity": 2}, headers=headers)

    updated = await client.put(f"/api/cart/items/{added['id']}", json={"quantity": 4}, headers=headers)
    assert updated.json()["data"]["old_quantity"] == 1
    assert updated.json()["data"]["quantity"] == 4

    removed = await client.delete(f"/api/cart/items/{added['id']}", headers=headers)
    assert removed.status_code == 200

    cleared = await client.post("/api/cart/clear", headers=headers)
    assert cleared.json()["data"]["deleted_items"] == 1


async def test_admin_sees_all_carts(client, make_user, make_product, auth_headers):
    admin = await make_user(name="Admin", role="admin")
    ani = await make_user(name="Ani")
    dedi = await make_user(name="Dedi")
    product = await make_product(stock=10)
    for user in (ani, dedi):
        await client.post("/api/cart/items", json={"product_id": product.id}, headers=auth_headers(user))

    everyone = (await client.get("/api/cart", headers=auth_headers(admin))).json()["data"]
    only_ani = (await client.get(
        "/api/cart", params={"user_id": ani.id}, headers=auth_headers(admin)
    )).json()["data"]

    assert everyone["total_carts"] == 2
    assert [c["user_name"] for c in only_ani["carts"]] == ["Ani"]


async def test_cannot_delete_someone_elses_cart(client, make_user, make_product, auth_headers):
    ani = await make_user(name="Ani")
    dedi = await make_user(name="Dedi")
    product = await make_product()
    added = (await client.post(
        "/api/cart/items", json={"product_id": product.id}, headers=auth_headers(ani)
    )).json()["data"]

    resp = await client.delete(f"/api/cart/{added['cart_id']}", headers=auth_headers(dedi))

    assert resp.status_code == 404
