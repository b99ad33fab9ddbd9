# Overview: Pytest coverage for the inventory HTTP API.

import pytest

from pharmacy_api.models import InventoryRecord


def test_restock_route(client, db_session, headers_a, product_a, stock_a):
    resp = client.post(
        "/api/inventory/restock",
        json={"product_id": product_a.id, "quantity": 10, "reorder_level": 3},
        headers=headers_a,
    )

    assert resp.status_code == 200
    assert resp.json["inventory"]["quantity_on_hand"] == 15
    assert resp.json["inventory"]["reorder_level"] == 3


@pytest.mark.parametrize("payload", [[{"product_id": 1, "quantity": 1}], ["product_id"], 7])
def test_restock_non_object_body(client, db_session, headers_a, product_a, stock_a, payload):
    resp = client.post("/api/inventory/restock", json=payload, headers=headers_a)

    assert resp.status_code == 400
    assert resp.json == {"error": "Invalid JSON payload"}
    assert db_session.get(InventoryRecord, stock_a.id).quantity_on_hand == 5


def test_restock_bad_quantity(client, db_session, headers_a, product_a, stock_a):
    resp = client.post("/api/inventory/restock", json={"product_id": product_a.id, "quantity": 0}, headers=headers_a)
    assert resp.status_code == 400


def test_list_low_stock(client, db_session, headers_a, stock_a, stock_a2):
    stock_a.reorder_level = 5
    db_session.commit()

    resp = client.get("/api/inventory/?low_stock=1", headers=headers_a)
    assert resp.status_code == 200
    assert [row["id"] for row in resp.json["inventory"]] == [stock_a.id]
