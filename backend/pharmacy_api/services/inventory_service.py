# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

"""
Inventory invariants:
- One live InventoryRecord per (product, branch); soft-deleted rows are ignored.
- quantity_on_hand is a stored counter and never goes negative.
- Decrements happen only inside sale creation (sales_service.create_sale).
- Increments happen only through restock().
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import InventoryRecord, Product
from ..time_utils import utcnow
from ..validation import ValidationError, coerce_int, require_positive_int
from .concurrency import lock_for_update, unit_of_work
from .tenant_service import TenantContext, get_tenant_branch_ids

logger = logging.getLogger(__name__)


class InventoryError(Exception):
    """Raised for inventory operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _record_query(session, branch_id: int, product_id: int):
    return session.query(InventoryRecord).filter(
        InventoryRecord.product_id == product_id,
        InventoryRecord.branch_id == branch_id,
        InventoryRecord.deleted_at.is_(None),
    )


def get_inventory_record(
    session,
    branch_id: int,
    product_id: int,
    *,
    for_update: bool = False,
) -> InventoryRecord | None:
    """Live inventory record for (product, branch), optionally row-locked."""
    query = _record_query(session, branch_id, product_id)
    if for_update:
        query = lock_for_update(query)
    return query.first()


def get_quantity_on_hand(branch_id: int, product_id: int) -> int:
    record = get_inventory_record(db.session, branch_id, product_id)
    return record.quantity_on_hand if record else 0


def _revive_deleted_record(session, branch_id: int, product_id: int) -> InventoryRecord | None:
    """
    Bring back a soft-deleted record for (product, branch).

    The UNIQUE(product, branch) constraint covers deleted rows too, so restock
    reuses the row instead of inserting a second one. Its old count is void.
    """
    record = lock_for_update(
        session.query(InventoryRecord).filter(
            InventoryRecord.product_id == product_id,
            InventoryRecord.branch_id == branch_id,
            InventoryRecord.deleted_at.isnot(None),
        )
    ).first()
    if record is not None:
        record.deleted_at = None
        record.quantity_on_hand = 0
        logger.info("Revived deleted inventory record %s", record.id)
    return record


def list_inventory(
    ctx: TenantContext,
    *,
    branch_id: int | None = None,
    low_stock_only: bool = False,
) -> list[dict]:
    """
    Inventory records visible to the tenant, with product info attached.

    branch_id narrows to one branch (validated against the tenant);
    otherwise every branch of the tenant is included.
    """
    if branch_id is not None:
        branch_ids = {ctx.with_branch(branch_id).branch_id}
    else:
        branch_ids = get_tenant_branch_ids(ctx.tenant_id)

    query = (
        db.session.query(InventoryRecord, Product)
        .join(Product, Product.id == InventoryRecord.product_id)
        .filter(
            InventoryRecord.branch_id.in_(branch_ids),
            InventoryRecord.deleted_at.is_(None),
            Product.tenant_id == ctx.tenant_id,
        )
    )
    if low_stock_only:
        query = query.filter(InventoryRecord.quantity_on_hand <= InventoryRecord.reorder_level)

    rows = query.order_by(InventoryRecord.branch_id.asc(), Product.name.asc()).all()

    result = []
    for record, product in rows:
        data = record.to_dict()
        data["product"] = {"id": product.id, "sku": product.sku, "name": product.name}
        result.append(data)
    return result


def restock(
    ctx: TenantContext,
    *,
    product_id,
    quantity,
    branch_id: int | None = None,
    reorder_level=None,
    session=None,
) -> InventoryRecord:
    """
    Increase on-hand quantity of a product at a branch.

    Creates the inventory record when the branch has never stocked the
    product. Runs in its own unit of work.
    """
    product_id = require_positive_int(product_id, "product_id")
    quantity = require_positive_int(quantity, "quantity")
    if reorder_level is not None:
        reorder_level = coerce_int(reorder_level, "reorder_level")
        if reorder_level < 0:
            raise ValidationError("reorder_level must be >= 0")

    ctx = ctx.with_branch(branch_id)
    if ctx.branch_id is None:
        raise ValidationError("branch_id is required")

    with unit_of_work(session) as uow:
        product = uow.query(Product).filter_by(id=product_id, tenant_id=ctx.tenant_id).first()
        if not product:
            raise InventoryError("Product not found", details={"product_id": product_id})

        record = get_inventory_record(uow, ctx.branch_id, product_id, for_update=True)
        if record is None:
            record = _revive_deleted_record(uow, ctx.branch_id, product_id)
        if record is None:
            record = InventoryRecord(
                product_id=product_id,
                branch_id=ctx.branch_id,
                quantity_on_hand=0,
                reorder_level=reorder_level or 0,
            )
            uow.add(record)

        record.quantity_on_hand += quantity
        if reorder_level is not None:
            record.reorder_level = reorder_level
        record.updated_at = utcnow()

    logger.info(
        "Restocked product %s at branch %s by %s (now %s)",
        product_id, ctx.branch_id, quantity, record.quantity_on_hand,
    )
    return record
