"""
Sales Service - sale creation with inventory deduction, plus sale queries.

WHY: A sale and the stock it consumes must move together. create_sale
writes the Sale, its items and every inventory decrement in one unit of
work: either all of it is committed or none of it is.

Concurrency: two sales racing for the same inventory row are serialized by
the database (row lock / transaction isolation). This module does no
locking of its own beyond requesting FOR UPDATE and never retries a sale.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, or_

from ..extensions import db
from ..models import (
    InventoryRecord,
    Patient,
    Sale,
    SaleItem,
    SALE_STATUSES,
    PAYMENT_STATUSES,
    PAYMENT_METHODS,
)
from ..time_utils import utcnow, parse_iso_datetime
from ..validation import (
    ValidationError,
    require_amount_cents,
    require_choice,
    require_positive_int,
)
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .inventory_service import get_inventory_record
from .numbering_service import (
    SALE_NUMBER_PREFIX,
    NumberGenerationError,
    generate_unique_number,
)
from .tenant_service import TenantContext, get_tenant_branch_ids

logger = logging.getLogger(__name__)

SALE_REQUEST_FIELDS = {
    "patient_id",
    "subtotal_cents",
    "tax_cents",
    "discount_cents",
    "total_cents",
    "payment_method",
    "notes",
    "items",
}
SALE_ITEM_FIELDS = {"product_id", "quantity", "unit_price_cents", "discount_cents", "total_price_cents"}


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientInventoryError(SaleError):
    """A line item asks for more than the branch has on hand."""


class InventoryRecordNotFoundError(SaleError):
    """The branch has no inventory record for a line item's product."""


class SaleNumberExhaustedError(SaleError):
    """Every sale number candidate collided. Not retryable."""


class SaleNotFoundError(SaleError):
    """Sale does not exist, is deleted, or belongs to another tenant."""


@dataclass(frozen=True)
class SaleItemRequest:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int
    total_price_cents: int


@dataclass(frozen=True)
class SaleRequest:
    payment_method: str
    subtotal_cents: int
    tax_cents: int
    discount_cents: int
    total_cents: int
    patient_id: int | None = None
    notes: str | None = None
    items: list[SaleItemRequest] = field(default_factory=list)


def _parse_item(raw, index: int) -> SaleItemRequest:
    label = f"items[{index}]"
    if not isinstance(raw, dict):
        raise ValidationError(f"{label} must be an object")
    unknown = sorted(set(raw) - SALE_ITEM_FIELDS)
    if unknown:
        raise ValidationError(f"{label}: field not allowed: {unknown[0]}")

    product_id = require_positive_int(raw.get("product_id"), f"{label}.product_id")
    quantity = require_positive_int(raw.get("quantity"), f"{label}.quantity")
    unit_price = require_amount_cents(raw.get("unit_price_cents"), f"{label}.unit_price_cents")
    discount = require_amount_cents(raw.get("discount_cents"), f"{label}.discount_cents", default=0)

    computed = unit_price * quantity - discount
    if computed < 0:
        raise ValidationError(f"{label}.discount_cents exceeds the line amount")
    raw_total = raw.get("total_price_cents")
    total = require_amount_cents(
        computed if raw_total is None else raw_total, f"{label}.total_price_cents"
    )

    return SaleItemRequest(
        product_id=product_id,
        quantity=quantity,
        unit_price_cents=unit_price,
        discount_cents=discount,
        total_price_cents=total,
    )


def parse_sale_request(payload) -> SaleRequest:
    """
    Validate and normalize a create-sale JSON body.

    Raises ValidationError before anything touches the database.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = sorted(set(payload) - SALE_REQUEST_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Sale must contain at least one item")
    items = [_parse_item(raw, i) for i, raw in enumerate(raw_items)]

    patient_id = payload.get("patient_id")
    if patient_id is not None:
        patient_id = require_positive_int(patient_id, "patient_id")

    notes = payload.get("notes")
    if notes is not None:
        notes = str(notes).strip() or None

    return SaleRequest(
        payment_method=require_choice(payload.get("payment_method"), "payment_method", PAYMENT_METHODS),
        subtotal_cents=require_amount_cents(payload.get("subtotal_cents"), "subtotal_cents", default=0),
        tax_cents=require_amount_cents(payload.get("tax_cents"), "tax_cents", default=0),
        discount_cents=require_amount_cents(payload.get("discount_cents"), "discount_cents", default=0),
        total_cents=require_amount_cents(payload.get("total_cents"), "total_cents"),
        patient_id=patient_id,
        notes=notes,
        items=items,
    )


def generate_sale_number(session=None, *, rng=None, now: datetime | None = None) -> str:
    """SALE<year><4 digits>, probed for uniqueness (10 attempts)."""
    session = session if session is not None else db.session
    try:
        return generate_unique_number(session, Sale.sale_number, SALE_NUMBER_PREFIX, rng=rng, now=now)
    except NumberGenerationError as exc:
        raise SaleNumberExhaustedError(str(exc), details=exc.details) from exc


def _require_patient(session, ctx: TenantContext, patient_id: int) -> Patient:
    patient = session.query(Patient).filter(
        Patient.id == patient_id,
        Patient.tenant_id == ctx.tenant_id,
        Patient.deleted_at.is_(None),
    ).first()
    if not patient:
        raise ValidationError("Patient not found")
    return patient


def _deduct_inventory(session, branch_id: int, item: SaleItemRequest, now: datetime) -> InventoryRecord:
    """Check and decrement one line's stock. Raises on the first failure."""
    record = get_inventory_record(session, branch_id, item.product_id, for_update=True)
    if record is None:
        raise InventoryRecordNotFoundError(
            f"Inventory not found for product {item.product_id}",
            details={"product_id": item.product_id, "branch_id": branch_id},
        )

    if record.quantity_on_hand < item.quantity:
        raise InsufficientInventoryError(
            f"Insufficient inventory for product {item.product_id}",
            details={
                "product_id": item.product_id,
                "requested_quantity": item.quantity,
                "available_quantity": record.quantity_on_hand,
            },
        )

    record.quantity_on_hand -= item.quantity
    record.updated_at = now
    return record


def create_sale(
    ctx: TenantContext,
    payload,
    *,
    session=None,
    rng=None,
) -> Sale:
    """
    Create a sale and deduct its stock atomically.

    Steps:
    1. Validate the request and generate a unique sale number.
    2. In one unit of work: for each item in order, load the branch's
       inventory record (FOR UPDATE), fail if missing or short, decrement.
    3. Persist the sale, its items and the decrements; commit.

    Any exception inside step 2/3 rolls back everything and is re-raised.
    On failure no sale, no item and no inventory change is committed.
    """
    request = payload if isinstance(payload, SaleRequest) else parse_sale_request(payload)
    if ctx.branch_id is None:
        raise ValidationError("branch_id is required")

    session = session if session is not None else db.session

    try:
        if request.patient_id is not None:
            _require_patient(session, ctx, request.patient_id)
        sale_number = generate_sale_number(session, rng=rng)
    except Exception:
        session.rollback()
        raise

    now = utcnow()
    with unit_of_work(session) as uow:
        sale = Sale(
            tenant_id=ctx.tenant_id,
            branch_id=ctx.branch_id,
            sale_number=sale_number,
            patient_id=request.patient_id,
            cashier_id=ctx.user_id,
            sale_date=now,
            subtotal_cents=request.subtotal_cents,
            tax_cents=request.tax_cents,
            discount_cents=request.discount_cents,
            total_cents=request.total_cents,
            payment_method=request.payment_method,
            payment_status="PENDING",
            status="PENDING",
            notes=request.notes,
        )

        for position, item in enumerate(request.items, start=1):
            _deduct_inventory(uow, ctx.branch_id, item, now)
            sale.items.append(SaleItem(
                product_id=item.product_id,
                position=position,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                discount_cents=item.discount_cents,
                total_price_cents=item.total_price_cents,
            ))

        uow.add(sale)

    logger.info(
        "Created sale %s at branch %s with %d item(s), total %s cents",
        sale.sale_number, sale.branch_id, len(request.items), sale.total_cents,
    )
    return sale


def _sale_query(ctx: TenantContext):
    return db.session.query(Sale).filter(
        Sale.tenant_id == ctx.tenant_id,
        Sale.deleted_at.is_(None),
    )


def get_sale(ctx: TenantContext, sale_id: int) -> Sale:
    sale = _sale_query(ctx).filter(Sale.id == sale_id).first()
    if not sale:
        raise SaleNotFoundError("Sale not found")
    return sale


def _apply_filters(query, ctx: TenantContext, *, start, end, branch_id):
    start_dt = parse_iso_datetime(start) if isinstance(start, str) else start
    end_dt = parse_iso_datetime(end) if isinstance(end, str) else end

    if branch_id is not None:
        if branch_id not in get_tenant_branch_ids(ctx.tenant_id):
            raise SaleNotFoundError("Branch not found")
        query = query.filter(Sale.branch_id == branch_id)
    if start_dt:
        query = query.filter(Sale.sale_date >= start_dt)
    if end_dt:
        query = query.filter(Sale.sale_date <= end_dt)
    return query


def list_sales(
    ctx: TenantContext,
    *,
    page: int = 1,
    page_size: int = 50,
    search: str | None = None,
    start=None,
    end=None,
    status: str | None = None,
    branch_id: int | None = None,
) -> dict:
    """
    Page through the tenant's sales, newest first.

    search matches a sale number substring or a patient number exactly.
    """
    try:
        query = _apply_filters(_sale_query(ctx), ctx, start=start, end=end, branch_id=branch_id)
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")

    if status:
        query = query.filter(Sale.status == require_choice(status, "status", SALE_STATUSES))

    if search:
        term = search.strip()
        query = query.outerjoin(Patient, Patient.id == Sale.patient_id).filter(
            or_(
                Sale.sale_number.ilike(f"%{term}%"),
                Patient.patient_number == term,
            )
        )

    total_count = query.count()
    sales = (
        query.order_by(Sale.sale_date.desc(), Sale.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    return {
        "sales": sales,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total_count": total_count,
            "total_pages": math.ceil(total_count / page_size) if page_size else 0,
        },
    }


def update_sale(
    ctx: TenantContext,
    sale_id: int,
    *,
    status: str | None = None,
    payment_status: str | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Update the mutable fields of a sale: status, payment_status, notes.

    Items, totals and inventory are never touched here.
    """
    if status is None and payment_status is None and notes is None:
        raise ValidationError("Nothing to update: provide status, payment_status or notes")
    if status is not None:
        status = require_choice(status, "status", SALE_STATUSES)
    if payment_status is not None:
        payment_status = require_choice(payment_status, "payment_status", PAYMENT_STATUSES)

    def _op():
        sale = lock_for_update(_sale_query(ctx).filter(Sale.id == sale_id)).first()
        if not sale:
            raise SaleNotFoundError("Sale not found")

        if status is not None:
            sale.status = status
        if payment_status is not None:
            sale.payment_status = payment_status
        if notes is not None:
            sale.notes = notes
        sale.updated_at = utcnow()

        db.session.commit()
        return sale

    try:
        return run_with_retry(_op)
    except SaleError:
        db.session.rollback()
        raise


def delete_sale(ctx: TenantContext, sale_id: int) -> Sale:
    """Soft delete. Stock consumed by the sale is not restored."""
    with unit_of_work():
        sale = _sale_query(ctx).filter(Sale.id == sale_id).first()
        if not sale:
            raise SaleNotFoundError("Sale not found")
        sale.deleted_at = utcnow()

    logger.info("Soft-deleted sale %s", sale.sale_number)
    return sale


def sales_stats(
    ctx: TenantContext,
    *,
    start=None,
    end=None,
    branch_id: int | None = None,
) -> dict:
    """Counts and revenue over the tenant's (non-deleted) sales."""
    try:
        base = _apply_filters(_sale_query(ctx), ctx, start=start, end=end, branch_id=branch_id)
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")

    total_sales = base.count()
    total_revenue = base.with_entities(func.coalesce(func.sum(Sale.total_cents), 0)).scalar()
    completed_sales = base.filter(Sale.status == "COMPLETED").count()
    pending_sales = base.filter(Sale.status == "PENDING").count()

    today_start = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    today = base.filter(Sale.sale_date >= today_start, Sale.sale_date < today_start + timedelta(days=1))
    today_sales = today.count()
    today_revenue = today.with_entities(func.coalesce(func.sum(Sale.total_cents), 0)).scalar()

    return {
        "total_sales": total_sales,
        "total_revenue_cents": int(total_revenue or 0),
        "completed_sales": completed_sales,
        "pending_sales": pending_sales,
        "today_sales": today_sales,
        "today_revenue_cents": int(today_revenue or 0),
    }
