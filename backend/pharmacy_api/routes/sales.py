# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/pharmacy_api/routes/sales.py
"""Sales API routes. Every call is scoped to the caller's tenant."""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import sales_service
from ..services.sales_service import (
    InsufficientInventoryError,
    InventoryRecordNotFoundError,
    SaleError,
    SaleNotFoundError,
    SaleNumberExhaustedError,
)
from ..decorators import require_auth, require_branch
from ..validation import ValidationError, coerce_int, parse_pagination


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _optional_branch_id():
    raw = request.args.get("branch_id")
    return coerce_int(raw, "branch_id") if raw else None


@sales_bp.post("/")
@require_auth
@require_branch
def create_sale_route():
    """
    Create a sale and deduct its stock from the branch inventory.

    Request body:
    {
        "branch_id": 3,                  // optional for branch users
        "patient_id": 12,                // optional
        "payment_method": "CASH",
        "subtotal_cents": 1000, "tax_cents": 0, "discount_cents": 0,
        "total_cents": 1000,
        "notes": "...",
        "items": [{"product_id": 7, "quantity": 2, "unit_price_cents": 500}]
    }

    Nothing is written unless every item has enough stock.
    """
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        data = {k: v for k, v in data.items() if k != "branch_id"}

    try:
        sale = sales_service.create_sale(g.tenant_context, data)
        return jsonify({"sale": sale.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except (InsufficientInventoryError, InventoryRecordNotFoundError) as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except SaleNumberExhaustedError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@require_auth
def list_sales_route():
    """
    Query params: page, page_size, search, start, end, status, branch_id.
    """
    try:
        page, page_size = parse_pagination(
            request.args, max_page_size=current_app.config.get("MAX_PAGE_SIZE", 100)
        )
        result = sales_service.list_sales(
            g.tenant_context,
            page=page,
            page_size=page_size,
            search=request.args.get("search"),
            start=request.args.get("start"),
            end=request.args.get("end"),
            status=request.args.get("status"),
            branch_id=_optional_branch_id(),
        )
        return jsonify({
            "sales": [s.to_dict(include_items=False) for s in result["sales"]],
            "pagination": result["pagination"],
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/stats")
@require_auth
def sales_stats_route():
    try:
        stats = sales_service.sales_stats(
            g.tenant_context,
            start=request.args.get("start"),
            end=request.args.get("end"),
            branch_id=_optional_branch_id(),
        )
        return jsonify({"stats": stats}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to compute sales stats")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.tenant_context, sale_id)
        return jsonify({"sale": sale.to_dict()}), 200

    except SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to load sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.patch("/<int:sale_id>")
@require_auth
def update_sale_route(sale_id: int):
    """Body may carry status, payment_status and notes. Items are immutable."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    unknown = sorted(set(data) - {"status", "payment_status", "notes"})
    if unknown:
        return jsonify({"error": f"Field not allowed: {unknown[0]}"}), 400

    try:
        sale = sales_service.update_sale(
            g.tenant_context,
            sale_id,
            status=data.get("status"),
            payment_status=data.get("payment_status"),
            notes=data.get("notes"),
        )
        return jsonify({"sale": sale.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.delete("/<int:sale_id>")
@require_auth
def delete_sale_route(sale_id: int):
    try:
        sale = sales_service.delete_sale(g.tenant_context, sale_id)
        return jsonify({"message": "Sale deleted", "sale_id": sale.id}), 200

    except SaleNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500
