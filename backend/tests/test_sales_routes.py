# Overview: Pytest coverage for the sales HTTP API.

import pytest

from pharmacy_api.models import InventoryRecord, Sale
from pharmacy_api.services import sales_service


def body(*items, **extra):
    data = {
        "payment_method": "CASH",
        "subtotal_cents": 1500,
        "total_cents": 1500,
        "items": [
            {"product_id": product_id, "quantity": qty, "unit_price_cents": 500}
            for product_id, qty in items
        ],
    }
    data.update(extra)
    return data


class TestCreateSaleRoute:

    def test_created(self, client, db_session, headers_a, product_a, stock_a):
        resp = client.post("/api/sales/", json=body((product_a.id, 3)), headers=headers_a)

        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["sale_number"].startswith("SALE")
        assert sale["status"] == "PENDING"
        assert sale["items"][0]["quantity"] == 3
        assert sale["items"][0]["total_price_cents"] == 1500
        assert db_session.get(InventoryRecord, stock_a.id).quantity_on_hand == 2

    def test_insufficient_inventory(self, client, db_session, headers_a, product_a, stock_a):
        resp = client.post("/api/sales/", json=body((product_a.id, 9)), headers=headers_a)

        assert resp.status_code == 400
        assert resp.json["error"] == f"Insufficient inventory for product {product_a.id}"
        assert resp.json["details"]["available_quantity"] == 5
        assert db_session.query(Sale).count() == 0

    def test_missing_inventory(self, client, db_session, headers_a, product_a2):
        resp = client.post("/api/sales/", json=body((product_a2.id, 1)), headers=headers_a)

        assert resp.status_code == 400
        assert resp.json["error"] == f"Inventory not found for product {product_a2.id}"

    def test_validation_error(self, client, db_session, headers_a):
        resp = client.post("/api/sales/", json=body(), headers=headers_a)
        assert resp.status_code == 400
        assert "at least one item" in resp.json["error"]

    def test_non_object_body(self, client, db_session, headers_a):
        resp = client.post("/api/sales/", json=[1, 2], headers=headers_a)
        assert resp.status_code == 400

    def test_number_exhaustion_is_conflict(self, client, db_session, headers_a, product_a, stock_a, monkeypatch):
        def exhausted(*args, **kwargs):
            raise sales_service.SaleNumberExhaustedError("Unable to generate unique sale number")

        monkeypatch.setattr(sales_service, "generate_sale_number", exhausted)
        resp = client.post("/api/sales/", json=body((product_a.id, 1)), headers=headers_a)

        assert resp.status_code == 409
        assert db_session.get(InventoryRecord, stock_a.id).quantity_on_hand == 5

    def test_unexpected_error_is_500(self, client, db_session, headers_a, product_a, stock_a, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(sales_service, "_deduct_inventory", boom)
        resp = client.post("/api/sales/", json=body((product_a.id, 1)), headers=headers_a)

        assert resp.status_code == 500
        assert resp.json == {"error": "Internal server error"}
        assert db_session.query(Sale).count() == 0

    def test_tenant_level_user_must_name_branch(self, client, db_session, headers_manager_a, product_a, stock_a):
        resp = client.post("/api/sales/", json=body((product_a.id, 1)), headers=headers_manager_a)
        assert resp.status_code == 400
        assert resp.json["error"] == "branch_id is required"

    def test_tenant_level_user_with_branch(
        self, client, db_session, headers_manager_a, branch_a, product_a, stock_a
    ):
        resp = client.post(
            "/api/sales/", json=body((product_a.id, 1), branch_id=branch_a.id), headers=headers_manager_a
        )
        assert resp.status_code == 201
        assert resp.json["sale"]["branch_id"] == branch_a.id

    def test_requires_auth(self, client, db_session):
        resp = client.post("/api/sales/", json=body())
        assert resp.status_code == 401


class TestSaleQueryRoutes:

    @pytest.fixture
    def sale_id(self, client, headers_a, product_a, stock_a):
        resp = client.post("/api/sales/", json=body((product_a.id, 1)), headers=headers_a)
        return resp.json["sale"]["id"]

    def test_list(self, client, headers_a, sale_id):
        resp = client.get("/api/sales/?page=1&page_size=10", headers=headers_a)
        assert resp.status_code == 200
        assert [s["id"] for s in resp.json["sales"]] == [sale_id]
        assert "items" not in resp.json["sales"][0]
        assert resp.json["pagination"]["total_count"] == 1

    def test_list_bad_page(self, client, headers_a):
        resp = client.get("/api/sales/?page=0", headers=headers_a)
        assert resp.status_code == 400

    def test_get(self, client, headers_a, sale_id):
        resp = client.get(f"/api/sales/{sale_id}", headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["sale"]["items"][0]["position"] == 1

    def test_get_missing(self, client, headers_a):
        resp = client.get("/api/sales/424242", headers=headers_a)
        assert resp.status_code == 404

    def test_patch(self, client, headers_a, sale_id):
        resp = client.patch(
            f"/api/sales/{sale_id}", json={"status": "COMPLETED", "payment_status": "PAID"}, headers=headers_a
        )
        assert resp.status_code == 200
        assert resp.json["sale"]["status"] == "COMPLETED"
        assert resp.json["sale"]["payment_status"] == "PAID"

    def test_patch_rejects_items(self, client, headers_a, sale_id):
        resp = client.patch(f"/api/sales/{sale_id}", json={"items": []}, headers=headers_a)
        assert resp.status_code == 400

    def test_delete(self, client, headers_a, sale_id):
        resp = client.delete(f"/api/sales/{sale_id}", headers=headers_a)
        assert resp.status_code == 200
        assert client.get(f"/api/sales/{sale_id}", headers=headers_a).status_code == 404

    def test_stats(self, client, headers_a, sale_id):
        resp = client.get("/api/sales/stats", headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["stats"]["total_sales"] == 1
        assert resp.json["stats"]["total_revenue_cents"] == 1500

    @pytest.mark.parametrize("payload", [[{"status": "COMPLETED"}], ["status"], "COMPLETED"])
    def test_patch_non_object_body(self, client, headers_a, sale_id, payload):
        resp = client.patch(f"/api/sales/{sale_id}", json=payload, headers=headers_a)
        assert resp.status_code == 400
        assert resp.json == {"error": "Invalid JSON payload"}


class TestUnexpectedErrors:
    """Read and delete endpoints answer unexpected failures with the JSON 500 envelope."""

    @pytest.fixture
    def broken(self, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("database went away")
        return lambda name: monkeypatch.setattr(sales_service, name, boom)

    @pytest.mark.parametrize("method, url, service_fn", [
        ("get", "/api/sales/1", "get_sale"),
        ("delete", "/api/sales/1", "delete_sale"),
        ("get", "/api/sales/stats", "sales_stats"),
        ("get", "/api/sales/", "list_sales"),
    ])
    def test_internal_error(self, client, db_session, headers_a, broken, method, url, service_fn):
        broken(service_fn)
        resp = getattr(client, method)(url, headers=headers_a)

        assert resp.status_code == 500
        assert resp.json == {"error": "Internal server error"}
