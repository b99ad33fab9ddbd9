# Overview: Pytest coverage for sale creation and inventory deduction.

"""
Sale creation tests.

A sale and the stock it consumes move together: on success every line is
decremented and the sale is persisted; on any failure nothing is.
"""

import re
from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from pharmacy_api.models import InventoryRecord, Patient, Sale, SaleItem
from pharmacy_api.services import inventory_service, sales_service
from pharmacy_api.services.sales_service import (
    InsufficientInventoryError,
    InventoryRecordNotFoundError,
    SaleNumberExhaustedError,
)
from pharmacy_api.services.tenant_service import TenantContext
from pharmacy_api.time_utils import utcnow
from pharmacy_api.validation import MAX_AMOUNT_CENTS, ValidationError


class FixedRandom:
    """Returns the given suffixes in order, repeating the last one."""

    def __init__(self, *values):
        self.values = list(values)

    def randrange(self, start, stop):
        if len(self.values) > 1:
            return self.values.pop(0)
        return self.values[0]


def sale_payload(*items, **overrides):
    payload = {
        "payment_method": "CASH",
        "subtotal_cents": 0,
        "total_cents": 0,
        "items": [
            {"product_id": product_id, "quantity": qty, "unit_price_cents": 500}
            for product_id, qty in items
        ],
    }
    payload.update(overrides)
    return payload


def qoh(db_session, record_id):
    return db_session.get(InventoryRecord, record_id).quantity_on_hand


class TestCreateSale:

    def test_success_decrements_stock(self, db_session, ctx_a, product_a, stock_a):
        sale = sales_service.create_sale(ctx_a, sale_payload((product_a.id, 3), total_cents=1500))

        assert re.fullmatch(r"SALE\d{4}\d{4}", sale.sale_number)
        assert sale.status == "PENDING"
        assert sale.payment_status == "PENDING"
        assert sale.branch_id == ctx_a.branch_id
        assert sale.cashier_id == ctx_a.user_id
        assert qoh(db_session, stock_a.id) == 2

        items = db_session.query(SaleItem).filter_by(sale_id=sale.id).all()
        assert len(items) == 1
        assert items[0].quantity == 3
        assert items[0].total_price_cents == 1500

    def test_second_sale_exceeding_remaining_stock_fails(self, db_session, ctx_a, product_a, stock_a):
        sales_service.create_sale(ctx_a, sale_payload((product_a.id, 3)))

        with pytest.raises(InsufficientInventoryError) as exc:
            sales_service.create_sale(ctx_a, sale_payload((product_a.id, 3)))

        assert str(exc.value) == f"Insufficient inventory for product {product_a.id}"
        assert exc.value.details["available_quantity"] == 2
        assert exc.value.details["requested_quantity"] == 3
        assert qoh(db_session, stock_a.id) == 2
        assert db_session.query(Sale).count() == 1

    def test_missing_inventory_record(self, db_session, ctx_a, product_a2):
        with pytest.raises(InventoryRecordNotFoundError) as exc:
            sales_service.create_sale(ctx_a, sale_payload((product_a2.id, 1)))

        assert str(exc.value) == f"Inventory not found for product {product_a2.id}"
        assert db_session.query(Sale).count() == 0

    def test_failing_later_item_rolls_back_earlier_items(
        self, db_session, ctx_a, product_a, product_a2, stock_a, stock_a2
    ):
        with pytest.raises(InsufficientInventoryError):
            sales_service.create_sale(ctx_a, sale_payload((product_a2.id, 2), (product_a.id, 6)))

        assert qoh(db_session, stock_a2.id) == 10
        assert qoh(db_session, stock_a.id) == 5
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleItem).count() == 0

    def test_restock_then_sale_succeeds(self, db_session, ctx_a, product_a, stock_a):
        with pytest.raises(InsufficientInventoryError):
            sales_service.create_sale(ctx_a, sale_payload((product_a.id, 8)))

        inventory_service.restock(ctx_a, product_id=product_a.id, quantity=5)
        sales_service.create_sale(ctx_a, sale_payload((product_a.id, 8)))

        assert qoh(db_session, stock_a.id) == 2

    def test_duplicate_products_are_decremented_cumulatively(self, db_session, ctx_a, product_a, stock_a):
        with pytest.raises(InsufficientInventoryError):
            sales_service.create_sale(ctx_a, sale_payload((product_a.id, 3), (product_a.id, 3)))
        assert qoh(db_session, stock_a.id) == 5

        sale = sales_service.create_sale(ctx_a, sale_payload((product_a.id, 2), (product_a.id, 3)))
        assert qoh(db_session, stock_a.id) == 0
        assert [item.position for item in sale.items] == [1, 2]

    def test_stock_at_other_branch_is_not_used(self, db_session, ctx_a, product_a, branch_a2):
        from conftest import make_stock
        make_stock(db_session, product_a, branch_a2, 50)

        with pytest.raises(InventoryRecordNotFoundError):
            sales_service.create_sale(ctx_a, sale_payload((product_a.id, 1)))

    def test_deleted_inventory_record_is_ignored(self, db_session, ctx_a, product_a, stock_a):
        stock_a.deleted_at = datetime(2026, 1, 1)
        db_session.commit()

        with pytest.raises(InventoryRecordNotFoundError):
            sales_service.create_sale(ctx_a, sale_payload((product_a.id, 1)))

    def test_empty_items_rejected(self, db_session, ctx_a):
        with pytest.raises(ValidationError, match="at least one item"):
            sales_service.create_sale(ctx_a, sale_payload())

    def test_computed_line_total_is_bounded(self, db_session, ctx_a, product_a, stock_a):
        payload = sale_payload((product_a.id, 2))
        payload["items"][0]["unit_price_cents"] = MAX_AMOUNT_CENTS

        with pytest.raises(ValidationError, match="total_price_cents cannot exceed"):
            sales_service.create_sale(ctx_a, payload)
        assert qoh(db_session, stock_a.id) == 5

    def test_non_positive_quantity_rejected(self, db_session, ctx_a, product_a, stock_a):
        with pytest.raises(ValidationError):
            sales_service.create_sale(ctx_a, sale_payload((product_a.id, 0)))
        assert qoh(db_session, stock_a.id) == 5

    def test_unknown_payment_method_rejected(self, db_session, ctx_a, product_a, stock_a):
        with pytest.raises(ValidationError):
            sales_service.create_sale(ctx_a, sale_payload((product_a.id, 1), payment_method="BARTER"))

    def test_payment_method_is_case_insensitive(self, db_session, ctx_a, product_a, stock_a):
        sale = sales_service.create_sale(ctx_a, sale_payload((product_a.id, 1), payment_method="mobile_money"))
        assert sale.payment_method == "MOBILE_MONEY"

    def test_branch_required(self, db_session, user_a, product_a, stock_a):
        ctx = TenantContext(tenant_id=user_a.tenant_id, branch_id=None, user_id=user_a.id)
        with pytest.raises(ValidationError, match="branch_id"):
            sales_service.create_sale(ctx, sale_payload((product_a.id, 1)))

    def test_patient_from_other_tenant_rejected(self, db_session, ctx_a, tenant_b, product_a, stock_a):
        foreign = Patient(tenant_id=tenant_b.id, patient_number="PAT20261111", first_name="Bo", last_name="B")
        db_session.add(foreign)
        db_session.commit()

        with pytest.raises(ValidationError, match="Patient not found"):
            sales_service.create_sale(ctx_a, sale_payload((product_a.id, 1), patient_id=foreign.id))
        assert qoh(db_session, stock_a.id) == 5

    def test_patient_of_same_tenant_attached(self, db_session, ctx_a, tenant_a, product_a, stock_a):
        patient = Patient(tenant_id=tenant_a.id, patient_number="PAT20262222", first_name="Al", last_name="A")
        db_session.add(patient)
        db_session.commit()

        sale = sales_service.create_sale(ctx_a, sale_payload((product_a.id, 1), patient_id=patient.id))
        assert sale.patient_id == patient.id


class TestSaleNumbers:

    def test_collision_draws_new_suffix(self, db_session, ctx_a, product_a, stock_a):
        year = utcnow().year
        first = sales_service.create_sale(ctx_a, sale_payload((product_a.id, 1)), rng=FixedRandom(1234))
        assert first.sale_number == f"SALE{year}1234"

        second = sales_service.create_sale(
            ctx_a, sale_payload((product_a.id, 1)), rng=FixedRandom(1234, 5678)
        )
        assert second.sale_number == f"SALE{year}5678"

    def test_exhaustion_creates_nothing(self, db_session, ctx_a, product_a, stock_a):
        sales_service.create_sale(ctx_a, sale_payload((product_a.id, 1)), rng=FixedRandom(4321))

        with pytest.raises(SaleNumberExhaustedError):
            sales_service.create_sale(ctx_a, sale_payload((product_a.id, 1)), rng=FixedRandom(4321))

        assert db_session.query(Sale).count() == 1
        assert qoh(db_session, stock_a.id) == 4

    def test_number_taken_at_commit_rolls_back_decrements(
        self, db_session, ctx_a, product_a, product_a2, stock_a, stock_a2, monkeypatch
    ):
        first = sales_service.create_sale(ctx_a, sale_payload((product_a.id, 1)))

        # The generator hands out a number another sale already holds
        monkeypatch.setattr(sales_service, "generate_sale_number", lambda *args, **kwargs: first.sale_number)
        with pytest.raises(IntegrityError):
            sales_service.create_sale(ctx_a, sale_payload((product_a.id, 2), (product_a2.id, 3)))

        assert qoh(db_session, stock_a.id) == 4
        assert qoh(db_session, stock_a2.id) == 10
        assert db_session.query(Sale).count() == 1
        assert db_session.query(SaleItem).count() == 1
