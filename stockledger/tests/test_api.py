import pytest
from fastapi.testclient import TestClient

from stockledger.app.api.deps import get_db
from stockledger.app.main import app


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers(tenant, user):
    return {"X-Tenant-ID": str(tenant.id), "X-User-ID": str(user.id)}


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_inbound_then_outbound_over_http(client, headers, warehouse, product):
    r = client.post(
        "/v1/inventory/inbound",
        headers=headers,
        json={"product_id": product.id, "warehouse_id": warehouse.id, "quantity": "12", "unit_cost": "2.5"},
    )
    assert r.status_code == 201, r.text
    assert r.json()["batch"]["batch_number"].startswith("B-")

    r = client.post(
        "/v1/inventory/outbound",
        headers=headers,
        json={"product_id": product.id, "warehouse_id": warehouse.id, "quantity": "5", "reason": "SALE"},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["affected_batches"] == 1
    assert float(body["total_quantity"]) == 5

    r = client.get(f"/v1/inventory/stock/{product.id}", headers=headers, params={"warehouse_id": warehouse.id})
    assert r.status_code == 200
    assert float(r.json()["total_stock"]) == 7


def test_insufficient_stock_maps_to_409(client, headers, warehouse, product):
    r = client.post(
        "/v1/inventory/outbound",
        headers=headers,
        json={"product_id": product.id, "warehouse_id": warehouse.id, "quantity": "1", "reason": "SALE"},
    )
    assert r.status_code == 409
    assert r.json()["error"] == "INSUFFICIENT_STOCK"


def test_foreign_tenant_sees_not_found(client, other_tenant, user, warehouse, product):
    r = client.get(
        f"/v1/inventory/stock/{product.id}",
        headers={"X-Tenant-ID": str(other_tenant.id), "X-User-ID": str(user.id)},
        params={"warehouse_id": warehouse.id},
    )
    assert r.status_code == 404
    assert r.json()["error"] == "NOT_FOUND"


def test_missing_tenant_header_is_rejected(client, product, warehouse):
    r = client.get(f"/v1/inventory/stock/{product.id}", params={"warehouse_id": warehouse.id})
    assert r.status_code == 422


def test_purchase_order_flow_over_http(client, headers, supplier, warehouse, product):
    r = client.post("/v1/purchase-orders", headers=headers, json={"supplier_id": supplier.id})
    assert r.status_code == 201, r.text
    order_id = r.json()["id"]

    r = client.post(
        f"/v1/purchase-orders/{order_id}/items",
        headers=headers,
        json={"product_id": product.id, "quantity_ordered": "10", "unit_price": "100", "tax_rate": "0.15"},
    )
    assert r.status_code == 201, r.text

    assert client.post(f"/v1/purchase-orders/{order_id}/send", headers=headers).status_code == 200

    r = client.post(
        f"/v1/purchase-orders/{order_id}/receive",
        headers=headers,
        json={
            "warehouse_id": warehouse.id,
            "items": [{"product_id": product.id, "quantity_received": "10", "unit_cost": "100"}],
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["order"]["status"] == "RECEIVED"
    payable_id = body["payable"]["id"]
    assert float(body["payable"]["total_amount"]) == 1150

    r = client.post(
        f"/v1/accounts-payable/{payable_id}/payments",
        headers=headers,
        json={"amount": "2000", "payment_method": "TRANSFER"},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "EXCEEDS_BALANCE"

    r = client.post(
        f"/v1/accounts-payable/{payable_id}/payments",
        headers=headers,
        json={"amount": "1150", "payment_method": "TRANSFER"},
    )
    assert r.status_code == 201, r.text
    assert r.json()["payable"]["status"] == "PAID"

    r = client.get("/v1/accounts-payable/summary", headers=headers)
    assert r.json()["PAID"]["count"] == 1


def test_editing_a_sent_order_is_409(client, headers, supplier, product):
    order_id = client.post("/v1/purchase-orders", headers=headers, json={"supplier_id": supplier.id}).json()["id"]
    client.post(
        f"/v1/purchase-orders/{order_id}/items",
        headers=headers,
        json={"product_id": product.id, "quantity_ordered": "1", "unit_price": "1"},
    )
    client.post(f"/v1/purchase-orders/{order_id}/send", headers=headers)

    r = client.patch(f"/v1/purchase-orders/{order_id}", headers=headers, json={"notes": "too late"})

    assert r.status_code == 409
    assert r.json()["error"] == "INVALID_STATE"


def test_outbound_with_excess_decimals_is_422(client, headers, warehouse, product):
    r = client.post(
        "/v1/inventory/outbound",
        headers=headers,
        json={"product_id": product.id, "warehouse_id": warehouse.id, "quantity": "0.0004", "reason": "SALE"},
    )
    assert r.status_code == 422


def test_duplicate_product_sku_is_409(client, headers):
    payload = {"sku": "FLOUR-1", "name": "Flour 1kg"}
    r = client.post("/v1/products", headers=headers, json=payload)
    assert r.status_code == 201, r.text

    r = client.post("/v1/products", headers=headers, json=payload)
    assert r.status_code == 409
    assert r.json()["error"] == "CONFLICT"


def test_audit_flow_over_http(client, headers, warehouse, product):
    client.post(
        "/v1/inventory/inbound",
        headers=headers,
        json={"product_id": product.id, "warehouse_id": warehouse.id, "quantity": "10", "unit_cost": "3"},
    )

    r = client.post("/v1/audits", headers=headers, json={"warehouse_id": warehouse.id, "name": "Weekly"})
    assert r.status_code == 201, r.text
    audit = r.json()
    [item] = audit["items"]
    assert float(item["system_stock"]) == 10

    r = client.patch(
        f"/v1/audits/{audit['id']}/items/{item['id']}",
        headers=headers,
        json={"counted_quantity": "8"},
    )
    assert r.status_code == 200, r.text
    assert float(r.json()["variance"]) == -2

    r = client.post(f"/v1/audits/{audit['id']}/close", headers=headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["audit"]["status"] == "COMPLETED"
    assert [m["reason"] for m in body["movements"]] == ["ADJUSTMENT"]

    r = client.get(f"/v1/inventory/stock/{product.id}", headers=headers, params={"warehouse_id": warehouse.id})
    assert float(r.json()["total_stock"]) == 8
