# backend/pharmacy_api/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are tenant-scoped.
- Products belong to a tenant and are shared by all of its branches
- SKU is unique within a tenant
- A product of another tenant is answered as "Product not found"

Deleting a product only deactivates it: past sales keep their references and
existing stock records are left as they are.
"""
from __future__ import annotations

import logging
import math

from sqlalchemy import or_

from ..extensions import db
from ..models import Product
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    require_amount_cents,
    validate_payload,
)
from .concurrency import unit_of_work
from .inventory_service import get_quantity_on_hand
from .tenant_service import TenantContext

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = {
    "sku",
    "name",
    "generic_name",
    "dosage_form",
    "strength",
    "requires_prescription",
    "unit_price_cents",
    "is_active",
}

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_FIELDS,
    required_on_create={"sku", "name", "unit_price_cents"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(writable_fields=PRODUCT_FIELDS)


class ProductNotFoundError(Exception):
    pass


def _enforce_rules(patch: dict, payload: dict) -> None:
    if patch.get("unit_price_cents") is not None:
        patch["unit_price_cents"] = require_amount_cents(patch["unit_price_cents"], "unit_price_cents")
    # validate_payload coerces booleans by truthiness; flags must be real JSON booleans
    for flag in ("requires_prescription", "is_active"):
        if payload.get(flag) is not None and not isinstance(payload[flag], bool):
            raise ValidationError(f"{flag} must be a boolean")


def _product_query(ctx: TenantContext):
    return db.session.query(Product).filter(Product.tenant_id == ctx.tenant_id)


def _require_unique_sku(session, tenant_id: int, sku: str, exclude_id: int | None = None) -> None:
    query = session.query(Product).filter(Product.tenant_id == tenant_id, Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("SKU already exists for this tenant.")


def product_to_dict(ctx: TenantContext, product: Product) -> dict:
    """Product fields plus on-hand stock at the caller's branch, if any."""
    data = product.to_dict()
    if ctx.branch_id is not None:
        data["quantity_on_hand"] = get_quantity_on_hand(ctx.branch_id, product.id)
    return data


def list_products(
    ctx: TenantContext,
    *,
    page: int = 1,
    page_size: int = 50,
    search: str | None = None,
    include_inactive: bool = False,
) -> dict:
    """
    Tenant-scoped catalog listing, ordered by name.

    search matches SKU, name or generic name (case-insensitive substring).
    Inactive products are hidden unless include_inactive is set.
    """
    query = _product_query(ctx)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))

    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Product.sku.ilike(term),
                Product.name.ilike(term),
                Product.generic_name.ilike(term),
            )
        )

    total_count = query.count()
    products = (
        query.order_by(Product.name.asc(), Product.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "products": products,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total_count": total_count,
            "total_pages": math.ceil(total_count / page_size) if page_size else 0,
        },
    }


def get_product(ctx: TenantContext, product_id: int) -> Product:
    product = _product_query(ctx).filter(Product.id == product_id).first()
    if not product:
        raise ProductNotFoundError("Product not found")
    return product


def create_product(ctx: TenantContext, payload: dict) -> Product:
    """
    Add a product to the caller's tenant catalog.

    Raises:
        ValidationError: payload fails column or business rules
        ConflictError: SKU already used in this tenant
    """
    patch = validate_payload(
        model=Product,
        payload=payload,
        policy=PRODUCT_CREATE_POLICY,
        partial=False,
    )
    _enforce_rules(patch, payload)

    with unit_of_work() as uow:
        _require_unique_sku(uow, ctx.tenant_id, patch["sku"])
        product = Product(tenant_id=ctx.tenant_id, **patch)
        uow.add(product)

    logger.info("Created product %s (%s) for tenant %s", product.sku, product.id, ctx.tenant_id)
    return product


def update_product(ctx: TenantContext, product_id: int, payload: dict) -> Product:
    patch = validate_payload(
        model=Product,
        payload=payload,
        policy=PRODUCT_UPDATE_POLICY,
        partial=True,
    )
    if not patch:
        raise ValidationError("Nothing to update")
    _enforce_rules(patch, payload)

    with unit_of_work() as uow:
        product = _product_query(ctx).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFoundError("Product not found")

        if "sku" in patch and patch["sku"] != product.sku:
            _require_unique_sku(uow, ctx.tenant_id, patch["sku"], exclude_id=product.id)

        for key, value in patch.items():
            setattr(product, key, value)
        product.updated_at = utcnow()

    return product


def delete_product(ctx: TenantContext, product_id: int) -> Product:
    """Soft-delete only: preserve IDs and historical references."""
    with unit_of_work():
        product = _product_query(ctx).filter(Product.id == product_id).first()
        if not product:
            raise ProductNotFoundError("Product not found")
        if product.is_active:
            product.is_active = False
            product.updated_at = utcnow()

    logger.info("Deactivated product %s", product.sku)
    return product
