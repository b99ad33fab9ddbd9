# Overview: Flask API routes for patient operations; parses input and returns JSON responses.

# backend/pharmacy_api/routes/patients.py
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..services import patient_service
from ..services.patient_service import PatientNotFoundError
from ..decorators import require_auth
from ..validation import ConflictError, ValidationError, parse_pagination


patients_bp = Blueprint("patients", __name__, url_prefix="/api/patients")


@patients_bp.get("/")
@require_auth
def list_patients_route():
    """Query params: page, page_size, search, status."""
    try:
        page, page_size = parse_pagination(
            request.args, max_page_size=current_app.config.get("MAX_PAGE_SIZE", 100)
        )
        result = patient_service.list_patients(
            g.tenant_context,
            page=page,
            page_size=page_size,
            search=request.args.get("search"),
            status=request.args.get("status"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({
        "patients": [p.to_dict() for p in result["patients"]],
        "pagination": result["pagination"],
    }), 200


@patients_bp.get("/stats")
@require_auth
def patient_stats_route():
    try:
        stats = patient_service.patient_stats(g.tenant_context)
        return jsonify({"stats": stats}), 200

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to compute patient stats")
        return jsonify({"error": "Internal server error"}), 500


@patients_bp.post("/")
@require_auth
def create_patient_route():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        patient = patient_service.create_patient(g.tenant_context, payload)
        return jsonify({"patient": patient.to_dict()}), 201

    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create patient")
        return jsonify({"error": "Internal server error"}), 500


@patients_bp.get("/<int:patient_id>")
@require_auth
def get_patient_route(patient_id: int):
    try:
        patient = patient_service.get_patient(g.tenant_context, patient_id)
    except PatientNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"patient": patient.to_dict()}), 200


@patients_bp.patch("/<int:patient_id>")
@require_auth
def update_patient_route(patient_id: int):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        patient = patient_service.update_patient(g.tenant_context, patient_id, payload)
        return jsonify({"patient": patient.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PatientNotFoundError as e:
        return jsonify({"error": str(e)}), 404


@patients_bp.delete("/<int:patient_id>")
@require_auth
def delete_patient_route(patient_id: int):
    try:
        patient_service.delete_patient(g.tenant_context, patient_id)
    except PatientNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    return jsonify({"message": "Patient deleted", "patient_id": patient_id}), 200
