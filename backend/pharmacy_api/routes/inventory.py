# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

# backend/pharmacy_api/routes/inventory.py
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import inventory_service
from ..services.inventory_service import InventoryError
from ..services.tenant_service import TenantAccessError
from ..decorators import require_auth, require_branch
from ..validation import ValidationError, coerce_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/")
@require_auth
def list_inventory_route():
    """
    Stock levels across the tenant's branches.

    Query params: branch_id (optional), low_stock=1 (optional).
    """
    raw_branch = request.args.get("branch_id")
    low_stock = request.args.get("low_stock", "").lower() in ("1", "true", "yes")

    try:
        branch_id = coerce_int(raw_branch, "branch_id") if raw_branch else None
        records = inventory_service.list_inventory(
            g.tenant_context, branch_id=branch_id, low_stock_only=low_stock
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except TenantAccessError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"inventory": records}), 200


@inventory_bp.post("/restock")
@require_auth
@require_branch
def restock_route():
    """
    Add stock for a product at a branch.

    Request body:
    {
        "branch_id": 3,          // optional for branch users
        "product_id": 7,
        "quantity": 24,
        "reorder_level": 5       // optional
    }
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        record = inventory_service.restock(
            g.tenant_context,
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            reorder_level=data.get("reorder_level"),
        )
        return jsonify({"inventory": record.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except InventoryError as e:
        return jsonify({"error": str(e), "details": e.details}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to restock inventory")
        return jsonify({"error": "Internal server error"}), 500
