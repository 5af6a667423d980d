"""API tests for the customer, product and order entity endpoints."""

from repo import CUSTOMER_TABLE, EntityRepo, Pager


def test_create_customer_fills_identity_defaults(client, customer_payload):
    r = client.post("/customers", json=customer_payload)
    assert r.status_code == 200
    row_key = r.json()["id"]
    assert r.json()["message"] == "Customer created successfully"

    got = client.get(f"/customers/Customer/{row_key}")
    assert got.status_code == 200
    body = got.json()
    assert body["partition_key"] == "Customer"
    assert body["row_key"] == row_key
    assert body["email"] == "alice@example.com"
    assert body["etag"]
    assert body["timestamp"]


def test_list_returns_all_entities(client, customer_payload):
    for i in range(3):
        client.post("/customers", json={**customer_payload, "email": f"c{i}@example.com"})
    r = client.get("/customers")
    assert r.status_code == 200
    assert sorted(c["email"] for c in r.json()) == ["c0@example.com", "c1@example.com", "c2@example.com"]


def test_get_missing_entity_is_404(client):
    r = client.get("/products/Product/nope")
    assert r.status_code == 404
    assert r.json()["kind"] == "NOT_FOUND"


def test_invalid_payload_is_400_validation(client, customer_payload):
    r = client.post("/customers", json={**customer_payload, "phone": "12"})
    assert r.status_code == 400
    assert r.json()["kind"] == "VALIDATION"
    assert "phone" in r.json()["error"]


def test_duplicate_key_is_409_conflict(client, product_payload):
    payload = {**product_payload, "partition_key": "Product", "row_key": "p-1"}
    assert client.post("/products", json=payload).status_code == 200
    r = client.post("/products", json=payload)
    assert r.status_code == 409
    assert r.json()["kind"] == "CONFLICT"


def test_update_replaces_properties_and_etag(client, product_payload):
    row_key = client.post("/products", json=product_payload).json()["id"]
    before = client.get(f"/products/Product/{row_key}").json()

    r = client.put("/products", json={**before, "price": 12.5, "etag": "*"})
    assert r.status_code == 200

    after = client.get(f"/products/Product/{row_key}").json()
    assert after["price"] == 12.5
    assert after["etag"] != before["etag"]


def test_update_missing_entity_is_404(client, product_payload):
    r = client.put("/products", json={**product_payload, "partition_key": "Product", "row_key": "ghost"})
    assert r.status_code == 404


def test_update_without_identifiers_is_400(client, product_payload):
    r = client.put("/products", json=product_payload)
    assert r.status_code == 400


def test_order_gets_server_side_order_date(client):
    r = client.post("/orders", json={"customer_row_key": "c1", "product_row_key": "p1", "quantity": 2})
    assert r.status_code == 200
    order = client.get(f"/orders/Order/{r.json()['id']}").json()
    assert order["order_date"]
    assert order["quantity"] == 2


def test_delete_order(client):
    row_key = client.post("/orders", json={"customer_row_key": "c1", "product_row_key": "p1", "quantity": 1}).json()["id"]
    assert client.delete(f"/orders/Order/{row_key}").status_code == 200
    assert client.get(f"/orders/Order/{row_key}").status_code == 404


def test_pager_walks_pages_with_continuation():
    customers = EntityRepo(CUSTOMER_TABLE)
    for i in range(5):
        customers.insert(CUSTOMER_TABLE, f"r{i}", {"customer_name": f"n{i}"})

    pages = list(Pager(CUSTOMER_TABLE, page_size=2).pages())
    assert [len(items) for items, _ in pages] == [2, 2, 1]
    assert pages[0][1] == (CUSTOMER_TABLE, "r1")
    assert pages[-1][1] is None

    resumed = next(Pager(CUSTOMER_TABLE, page_size=2).pages(after=pages[0][1]))[0]
    assert [e.row_key for e in resumed] == ["r2", "r3"]
    # iterating twice starts a fresh scan
    pager = customers.list(page_size=2)
    assert len(list(pager)) == len(list(pager)) == 5
