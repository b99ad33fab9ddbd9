# Overview: Flask API routes for prescription operations; parses input and returns JSON responses.

# backend/pharmacy_api/routes/prescriptions.py
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import patient_service, prescription_service
from ..services.patient_service import PatientNotFoundError
from ..services.prescription_service import PrescriptionNotFoundError
from ..decorators import require_auth
from ..validation import ConflictError, ValidationError, coerce_int, parse_pagination


prescriptions_bp = Blueprint("prescriptions", __name__, url_prefix="/api/prescriptions")


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _page_response(prescriptions):
    return [p.to_dict(include_items=False) for p in prescriptions]


@prescriptions_bp.get("/")
@require_auth
def list_prescriptions_route():
    """Query params: page, page_size, status, patient_id, search."""
    raw_patient = request.args.get("patient_id")
    try:
        page, page_size = parse_pagination(
            request.args, max_page_size=current_app.config.get("MAX_PAGE_SIZE", 100)
        )
        result = prescription_service.list_prescriptions(
            g.tenant_context,
            page=page,
            page_size=page_size,
            status=request.args.get("status"),
            patient_id=coerce_int(raw_patient, "patient_id") if raw_patient else None,
            search=request.args.get("search"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "prescriptions": _page_response(result["prescriptions"]),
        "pagination": result["pagination"],
    }), 200


@prescriptions_bp.get("/pending")
@require_auth
def pending_prescriptions_route():
    prescriptions = prescription_service.list_pending(g.tenant_context)
    return jsonify({"prescriptions": _page_response(prescriptions)}), 200


@prescriptions_bp.get("/expired")
@require_auth
def expired_prescriptions_route():
    prescriptions = prescription_service.list_expired(g.tenant_context)
    return jsonify({"prescriptions": _page_response(prescriptions)}), 200


@prescriptions_bp.get("/patient/<int:patient_id>")
@require_auth
def patient_prescriptions_route(patient_id: int):
    try:
        patient_service.get_patient(g.tenant_context, patient_id)
    except PatientNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    result = prescription_service.list_prescriptions(
        g.tenant_context, patient_id=patient_id, page_size=current_app.config.get("MAX_PAGE_SIZE", 100)
    )
    return jsonify({"prescriptions": _page_response(result["prescriptions"])}), 200


@prescriptions_bp.post("/")
@require_auth
def create_prescription_route():
    """
    Record a prescription for review.

    Request body:
    {
        "patient_id": 12,
        "prescriber_name": "Dr. Banda",      // optional
        "diagnosis": "...",                  // optional
        "issue_date": "2026-10-01",          // optional, defaults to today
        "expiry_date": "2026-12-31",         // optional
        "is_urgent": false,                  // optional
        "items": [{"product_id": 7, "quantity": 21, "dosage": "1 tablet",
                   "frequency": "3x daily", "duration_days": 7}]
    }
    """
    payload = _json_body()
    if payload is None:
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        prescription = prescription_service.create_prescription(g.tenant_context, payload)
        return jsonify({"prescription": prescription.to_dict()}), 201

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create prescription")
        return jsonify({"error": "Internal server error"}), 500


@prescriptions_bp.get("/<int:prescription_id>")
@require_auth
def get_prescription_route(prescription_id: int):
    try:
        prescription = prescription_service.get_prescription(g.tenant_context, prescription_id)
    except PrescriptionNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"prescription": prescription.to_dict()}), 200


@prescriptions_bp.patch("/<int:prescription_id>")
@require_auth
def update_prescription_route(prescription_id: int):
    payload = _json_body()
    if payload is None:
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        prescription = prescription_service.update_prescription(g.tenant_context, prescription_id, payload)
        return jsonify({"prescription": prescription.to_dict()}), 200

    except PrescriptionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update prescription")
        return jsonify({"error": "Internal server error"}), 500


@prescriptions_bp.post("/<int:prescription_id>/verify")
@require_auth
def verify_prescription_route(prescription_id: int):
    """Body: {"is_verified": true, "notes": "..."}"""
    payload = _json_body()
    if payload is None:
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        prescription = prescription_service.verify_prescription(
            g.tenant_context,
            prescription_id,
            approved=payload.get("is_verified"),
            notes=payload.get("notes"),
        )
        return jsonify({"prescription": prescription.to_dict()}), 200

    except PrescriptionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to verify prescription")
        return jsonify({"error": "Internal server error"}), 500


@prescriptions_bp.post("/<int:prescription_id>/dispense")
@require_auth
def dispense_prescription_route(prescription_id: int):
    """Body: {"sale_id": 42, "notes": "..."} (both optional)"""
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        prescription = prescription_service.dispense_prescription(
            g.tenant_context,
            prescription_id,
            sale_id=payload.get("sale_id"),
            notes=payload.get("notes"),
        )
        return jsonify({"prescription": prescription.to_dict()}), 200

    except PrescriptionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to dispense prescription")
        return jsonify({"error": "Internal server error"}), 500


@prescriptions_bp.delete("/<int:prescription_id>")
@require_auth
def delete_prescription_route(prescription_id: int):
    try:
        prescription_service.delete_prescription(g.tenant_context, prescription_id)
    except PrescriptionNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409

    return jsonify({"message": "Prescription deleted", "prescription_id": prescription_id}), 200
