# Overview: Pytest coverage for the product catalog service and HTTP API.

import pytest

from pharmacy_api.models import Product
from pharmacy_api.services import products_service
from pharmacy_api.services.products_service import ProductNotFoundError
from pharmacy_api.services.tenant_service import TenantContext
from pharmacy_api.validation import MAX_AMOUNT_CENTS, ConflictError, ValidationError


def product_payload(**overrides):
    payload = {
        "sku": "CET-10",
        "name": "Cetirizine 10mg",
        "unit_price_cents": 275,
        "generic_name": "cetirizine",
        "dosage_form": "tablet",
        "strength": "10mg",
    }
    payload.update(overrides)
    return payload


class TestProductService:

    def test_create(self, db_session, ctx_a):
        product = products_service.create_product(ctx_a, product_payload(requires_prescription=True))

        assert product.tenant_id == ctx_a.tenant_id
        assert product.sku == "CET-10"
        assert product.requires_prescription is True
        assert product.is_active is True

    def test_duplicate_sku_in_tenant_conflicts(self, db_session, ctx_a, product_a):
        with pytest.raises(ConflictError):
            products_service.create_product(ctx_a, product_payload(sku=product_a.sku))

    def test_same_sku_in_other_tenant_allowed(self, db_session, ctx_b, product_a):
        product = products_service.create_product(ctx_b, product_payload(sku=product_a.sku))
        assert product.tenant_id == ctx_b.tenant_id

    def test_requires_price(self, db_session, ctx_a):
        payload = product_payload()
        del payload["unit_price_cents"]
        with pytest.raises(ValidationError, match="unit_price_cents"):
            products_service.create_product(ctx_a, payload)

    @pytest.mark.parametrize("price", [-1, MAX_AMOUNT_CENTS + 1, 2.5])
    def test_rejects_bad_price(self, db_session, ctx_a, price):
        with pytest.raises(ValidationError):
            products_service.create_product(ctx_a, product_payload(unit_price_cents=price))

    def test_rejects_non_boolean_flag(self, db_session, ctx_a):
        with pytest.raises(ValidationError, match="requires_prescription"):
            products_service.create_product(ctx_a, product_payload(requires_prescription="yes"))

    def test_rejects_tenant_id(self, db_session, ctx_a, tenant_b):
        with pytest.raises(ValidationError, match="Field not allowed"):
            products_service.create_product(ctx_a, product_payload(tenant_id=tenant_b.id))

    def test_list_search_and_inactive(self, db_session, ctx_a, product_a, product_a2, product_b):
        listing = products_service.list_products(ctx_a)
        assert [p.id for p in listing["products"]] == [product_a.id, product_a2.id]

        found = products_service.list_products(ctx_a, search="para")
        assert [p.id for p in found["products"]] == [product_a2.id]

        products_service.delete_product(ctx_a, product_a.id)
        assert [p.id for p in products_service.list_products(ctx_a)["products"]] == [product_a2.id]
        everything = products_service.list_products(ctx_a, include_inactive=True)
        assert everything["pagination"]["total_count"] == 2

    def test_update_sku_conflict(self, db_session, ctx_a, product_a, product_a2):
        with pytest.raises(ConflictError):
            products_service.update_product(ctx_a, product_a2.id, {"sku": product_a.sku})

    def test_update(self, db_session, ctx_a, product_a):
        updated = products_service.update_product(ctx_a, product_a.id, {"unit_price_cents": 650})
        assert updated.unit_price_cents == 650

    def test_other_tenant_product_not_found(self, db_session, ctx_b, product_a):
        with pytest.raises(ProductNotFoundError):
            products_service.get_product(ctx_b, product_a.id)
        with pytest.raises(ProductNotFoundError):
            products_service.update_product(ctx_b, product_a.id, {"name": "Hijacked"})
        with pytest.raises(ProductNotFoundError):
            products_service.delete_product(ctx_b, product_a.id)
        assert db_session.get(Product, product_a.id).is_active is True

    def test_detail_includes_branch_stock(self, db_session, ctx_a, product_a, product_a2, stock_a):
        assert products_service.product_to_dict(ctx_a, product_a)["quantity_on_hand"] == 5
        assert products_service.product_to_dict(ctx_a, product_a2)["quantity_on_hand"] == 0

    def test_detail_without_branch_has_no_stock(self, db_session, manager_a, product_a, stock_a):
        ctx = TenantContext(tenant_id=manager_a.tenant_id, branch_id=None, user_id=manager_a.id)
        assert "quantity_on_hand" not in products_service.product_to_dict(ctx, product_a)


class TestProductRoutes:

    def test_create_then_sell(self, client, db_session, headers_a, branch_a):
        created = client.post("/api/products/", json=product_payload(), headers=headers_a)
        assert created.status_code == 201
        product_id = created.json["product"]["id"]

        restock = client.post(
            "/api/inventory/restock", json={"product_id": product_id, "quantity": 4}, headers=headers_a
        )
        assert restock.status_code == 200

        sale = client.post("/api/sales/", json={
            "payment_method": "CASH",
            "total_cents": 550,
            "items": [{"product_id": product_id, "quantity": 2, "unit_price_cents": 275}],
        }, headers=headers_a)
        assert sale.status_code == 201

        detail = client.get(f"/api/products/{product_id}", headers=headers_a)
        assert detail.status_code == 200
        assert detail.json["product"]["quantity_on_hand"] == 2

    def test_create_conflict(self, client, db_session, headers_a, product_a):
        resp = client.post("/api/products/", json=product_payload(sku=product_a.sku), headers=headers_a)
        assert resp.status_code == 409

    def test_create_non_object_body(self, client, db_session, headers_a):
        resp = client.post("/api/products/", json=["sku"], headers=headers_a)
        assert resp.status_code == 400

    def test_list(self, client, db_session, headers_a, product_a, product_b):
        resp = client.get("/api/products/?search=amox", headers=headers_a)
        assert resp.status_code == 200
        assert [p["id"] for p in resp.json["products"]] == [product_a.id]

    def test_update_and_delete(self, client, db_session, headers_a, product_a):
        resp = client.patch(f"/api/products/{product_a.id}", json={"name": "Amoxil 500mg"}, headers=headers_a)
        assert resp.status_code == 200
        assert resp.json["product"]["name"] == "Amoxil 500mg"

        resp = client.delete(f"/api/products/{product_a.id}", headers=headers_a)
        assert resp.status_code == 200
        assert db_session.get(Product, product_a.id).is_active is False

    def test_other_tenant_product_is_404(self, client, db_session, headers_b, product_a):
        assert client.get(f"/api/products/{product_a.id}", headers=headers_b).status_code == 404
        assert client.patch(
            f"/api/products/{product_a.id}", json={"name": "x"}, headers=headers_b
        ).status_code == 404
        assert client.delete(f"/api/products/{product_a.id}", headers=headers_b).status_code == 404
