# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/pharmacy_api/routes/products.py
"""
Product catalog routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's tenant.
A product of another tenant is answered with 404, same as a missing one.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import products_service
from ..services.products_service import ProductNotFoundError
from ..decorators import require_auth
from ..validation import ConflictError, ValidationError, parse_pagination


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/")
@require_auth
def list_products_route():
    """
    Query params:
    - page, page_size: pagination (page_size capped by MAX_PAGE_SIZE)
    - search: SKU / name / generic name substring
    - include_inactive=1: also list deactivated products
    """
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")

    try:
        page, page_size = parse_pagination(
            request.args, max_page_size=current_app.config.get("MAX_PAGE_SIZE", 100)
        )
        result = products_service.list_products(
            g.tenant_context,
            page=page,
            page_size=page_size,
            search=request.args.get("search"),
            include_inactive=include_inactive,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "products": [p.to_dict() for p in result["products"]],
        "pagination": result["pagination"],
    }), 200


@products_bp.post("/")
@require_auth
def create_product_route():
    """
    Create a product in the caller's tenant catalog.

    Request body:
    {
        "sku": "AMOX-500",
        "name": "Amoxicillin 500mg",
        "unit_price_cents": 1250,
        "generic_name": "amoxicillin",       // optional
        "dosage_form": "capsule",            // optional
        "strength": "500mg",                 // optional
        "requires_prescription": true        // optional
    }
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        product = products_service.create_product(g.tenant_context, payload)
        return jsonify({"product": product.to_dict()}), 201

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    """Product detail; includes quantity_on_hand at the caller's branch when it has one."""
    try:
        product = products_service.get_product(g.tenant_context, product_id)
    except ProductNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"product": products_service.product_to_dict(g.tenant_context, product)}), 200


@products_bp.patch("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        product = products_service.update_product(g.tenant_context, product_id, payload)
        return jsonify({"product": product.to_dict()}), 200

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ProductNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    """Deactivate a product. Its stock records and sales history stay."""
    try:
        products_service.delete_product(g.tenant_context, product_id)
    except ProductNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"message": "Product deactivated", "product_id": product_id}), 200
