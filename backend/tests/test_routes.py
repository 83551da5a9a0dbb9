# Overview: Pytest coverage for the HTTP API; request parsing and error mapping.

"""
API Route Tests

Drives the blueprints through the Flask test client. Verifies that:
1. A tenant can be provisioned and run a sale end to end over HTTP
2. Domain errors map to 400/404/409/422 with a JSON error body
3. Settings can be read and patched per company
"""


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "ok"
    assert body["checks"]["database"]["status"] == "healthy"


def test_sale_flow_over_http(client):
    created = client.post("/api/companies", json={"name": "Route Bakery", "code": "ROUTE"})
    assert created.status_code == 201
    headers = {"X-Company-Id": str(created.get_json()["company"]["id"]), "X-User-Id": "3"}

    warehouse = client.post("/api/locations", json={"name": "Depot"}, headers=headers).get_json()["location"]
    item = client.post(
        "/api/items", json={"sku": "ROLL-1", "name": "Roll", "price_cents": 250}, headers=headers
    ).get_json()["item"]
    customer = client.post("/api/customers", json={"name": "Cafe"}, headers=headers).get_json()["customer"]

    opening = client.post(
        "/api/inventory/opening",
        json={"item_id": item["id"], "location_id": warehouse["id"], "quantity": 20, "unit_cost_cents": 100},
        headers=headers,
    )
    assert opening.status_code == 201

    order = client.post(
        "/api/orders",
        json={
            "customer_id": customer["id"],
            "location_id": warehouse["id"],
            "lines": [{"item_id": item["id"], "quantity": 4}],
            "paid_cents": 300,
        },
        headers=headers,
    )
    assert order.status_code == 201
    order_body = order.get_json()["order"]
    assert order_body["total_cents"] == 1000
    assert order_body["debt_cents"] == 700
    assert order_body["cost_cents"] == 400

    debt = client.get(f"/api/customers/{customer['id']}/debt", headers=headers).get_json()
    assert debt["debt_cents"] == debt["reconstructed_cents"] == 700

    summary = client.get("/api/inventory/summary", headers=headers).get_json()
    assert summary["count"] == 1

    balances = {row["code"]: row for row in client.get("/api/journal/balances", headers=headers).get_json()["items"]}
    assert balances["4000"]["balance_cents"] == 1000

    audit = client.get("/api/journal/audit", headers=headers).get_json()
    assert audit == {"ok": True, "problems": []}


def test_insufficient_stock_is_a_conflict_with_details(client, headers, warehouse, customer, product, receive):
    receive(product, warehouse, 2, 400)

    response = client.post(
        "/api/orders",
        json={
            "customer_id": customer.id,
            "location_id": warehouse.id,
            "lines": [{"item_id": product.id, "quantity": 3}],
        },
        headers=headers,
    )

    assert response.status_code == 409
    body = response.get_json()
    assert body["requested"] == 3
    assert body["available"] == 2
    assert body["item_id"] == product.id


def test_validation_errors_are_bad_requests(client, headers, customer):
    missing = client.post("/api/cash/collections", json={"customer_id": customer.id}, headers=headers)
    zero = client.post(
        "/api/cash/collections", json={"customer_id": customer.id, "amount_cents": 0}, headers=headers
    )
    unknown_field = client.post("/api/items", json={"sku": "X", "name": "X", "colour": "red"}, headers=headers)

    assert missing.status_code == 400
    assert zero.status_code == 400
    assert unknown_field.status_code == 400
    assert "error" in missing.get_json()


def test_unknown_record_is_not_found(client, headers):
    assert client.get("/api/orders/424242", headers=headers).status_code == 404
    assert client.post("/api/journal/records/424242/reverse", headers=headers).status_code == 404


def test_invalid_transition_is_a_conflict(client, headers, driver):
    deposit = client.post(
        "/api/cash/deposits", json={"driver_id": driver.id, "amount_cents": 500}, headers=headers
    ).get_json()["deposit"]

    first = client.put(f"/api/cash/deposits/{deposit['id']}/status", json={"status": "CONFIRMED"}, headers=headers)
    second = client.put(f"/api/cash/deposits/{deposit['id']}/status", json={"status": "REJECTED"}, headers=headers)

    assert first.status_code == 200
    assert second.status_code == 409


def test_settings_round_trip(client, headers):
    current = client.get("/api/settings", headers=headers)
    assert current.get_json()["settings"]["valuation_method"] == "fifo"

    patched = client.patch("/api/settings", json={"valuation_method": "lifo"}, headers=headers)
    assert patched.status_code == 200
    assert patched.get_json()["settings"]["valuation_method"] == "lifo"

    invalid = client.patch("/api/settings", json={"valuation_method": "guess"}, headers=headers)
    assert invalid.status_code == 422


def test_manual_entry_and_reverse(client, headers):
    created = client.post(
        "/api/journal/entries",
        json={
            "description": "Owner capital",
            "lines": [
                {"account_code": "1000", "debit_cents": 50000},
                {"account_code": "3000", "credit_cents": 50000},
            ],
        },
        headers=headers,
    )
    assert created.status_code == 201
    record_id = created.get_json()["record"]["id"]

    reversed_ = client.post(f"/api/journal/records/{record_id}/reverse", headers=headers)
    assert reversed_.status_code == 201
    assert reversed_.get_json()["record"]["reverses_record_id"] == record_id

    unbalanced = client.post(
        "/api/journal/entries",
        json={"lines": [{"account_code": "1000", "debit_cents": 10}, {"account_code": "3000", "credit_cents": 9}]},
        headers=headers,
    )
    assert unbalanced.status_code == 400


def test_process_return_requires_boolean_credit_flag(client, headers, warehouse, customer, product, receive):
    receive(product, warehouse, 5, 400)
    created = client.post(
        "/api/returns",
        json={
            "customer_id": customer.id,
            "lines": [{"item_id": product.id, "quantity": 1, "unit_price_cents": 1000}],
        },
        headers=headers,
    )
    assert created.status_code == 201
    return_id = created.get_json()["return"]["id"]
    assert client.post(f"/api/returns/{return_id}/approve", headers=headers).status_code == 200

    bad = client.post(
        f"/api/returns/{return_id}/process",
        json={"issue_credit": "yes", "restock_location_id": warehouse.id},
        headers=headers,
    )
    assert bad.status_code == 400

    ok = client.post(
        f"/api/returns/{return_id}/process",
        json={"issue_credit": True, "restock_location_id": warehouse.id},
        headers=headers,
    )
    assert ok.status_code == 200
    assert ok.get_json()["return"]["status"] == "PROCESSED"


def test_duplicate_company_code_is_a_conflict(client, company):
    response = client.post("/api/companies", json={"name": "Copycat", "code": "acme"})

    assert response.status_code == 409
    assert "already exists" in response.get_json()["error"]
