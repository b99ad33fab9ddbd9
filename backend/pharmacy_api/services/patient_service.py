# Overview: Service-layer operations for patients; encapsulates business logic and database work.

from __future__ import annotations

import logging
import math
from datetime import timedelta

from sqlalchemy import or_

from ..extensions import db
from ..models import Patient
from ..time_utils import utcnow
from ..validation import ConflictError, ModelValidationPolicy, ValidationError, require_choice, validate_payload
from .concurrency import unit_of_work
from .numbering_service import PATIENT_NUMBER_PREFIX, NumberGenerationError, generate_unique_number
from .tenant_service import TenantContext

logger = logging.getLogger(__name__)

PATIENT_STATUSES = ("ACTIVE", "INACTIVE")

PATIENT_FIELDS = {
    "first_name",
    "last_name",
    "date_of_birth",
    "gender",
    "phone",
    "email",
    "address",
    "allergies",
    "insurance_provider",
    "insurance_number",
}

PATIENT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=PATIENT_FIELDS,
    required_on_create={"first_name", "last_name"},
)

PATIENT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=PATIENT_FIELDS | {"status"},
)


class PatientError(Exception):
    """Raised for patient operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PatientNotFoundError(PatientError):
    pass


def _enforce_rules(patch: dict) -> None:
    email = patch.get("email")
    if email and "@" not in email:
        raise ValidationError("email must be a valid email address")
    if "status" in patch:
        patch["status"] = require_choice(patch["status"], "status", PATIENT_STATUSES)


def _patient_query(ctx: TenantContext):
    return db.session.query(Patient).filter(
        Patient.tenant_id == ctx.tenant_id,
        Patient.deleted_at.is_(None),
    )


def create_patient(ctx: TenantContext, payload: dict, *, rng=None) -> Patient:
    """Register a patient under the caller's tenant (and branch, if any)."""
    patch = validate_payload(
        model=Patient,
        payload=payload,
        policy=PATIENT_CREATE_POLICY,
        partial=False,
    )
    _enforce_rules(patch)

    with unit_of_work() as uow:
        try:
            patient_number = generate_unique_number(uow, Patient.patient_number, PATIENT_NUMBER_PREFIX, rng=rng)
        except NumberGenerationError as exc:
            raise ConflictError(str(exc)) from exc

        patient = Patient(
            tenant_id=ctx.tenant_id,
            branch_id=ctx.branch_id,
            patient_number=patient_number,
            status="ACTIVE",
            **patch,
        )
        uow.add(patient)

    logger.info("Registered patient %s for tenant %s", patient.patient_number, ctx.tenant_id)
    return patient


def get_patient(ctx: TenantContext, patient_id: int) -> Patient:
    patient = _patient_query(ctx).filter(Patient.id == patient_id).first()
    if not patient:
        raise PatientNotFoundError("Patient not found")
    return patient


def list_patients(
    ctx: TenantContext,
    *,
    page: int = 1,
    page_size: int = 50,
    search: str | None = None,
    status: str | None = None,
) -> dict:
    query = _patient_query(ctx)

    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Patient.first_name.ilike(term),
                Patient.last_name.ilike(term),
                Patient.patient_number.ilike(term),
                Patient.email.ilike(term),
                Patient.phone.ilike(term),
            )
        )

    if status:
        query = query.filter(Patient.status == require_choice(status, "status", PATIENT_STATUSES))

    total_count = query.count()
    patients = (
        query.order_by(Patient.last_name.asc(), Patient.first_name.asc(), Patient.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "patients": patients,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total_count": total_count,
            "total_pages": math.ceil(total_count / page_size) if page_size else 0,
        },
    }


def update_patient(ctx: TenantContext, patient_id: int, payload: dict) -> Patient:
    patch = validate_payload(
        model=Patient,
        payload=payload,
        policy=PATIENT_UPDATE_POLICY,
        partial=True,
    )
    _enforce_rules(patch)

    with unit_of_work():
        patient = _patient_query(ctx).filter(Patient.id == patient_id).first()
        if not patient:
            raise PatientNotFoundError("Patient not found")
        for key, value in patch.items():
            setattr(patient, key, value)
        patient.updated_at = utcnow()

    return patient


def delete_patient(ctx: TenantContext, patient_id: int) -> None:
    """Soft delete; past sales keep their patient reference."""
    with unit_of_work():
        patient = _patient_query(ctx).filter(Patient.id == patient_id).first()
        if not patient:
            raise PatientNotFoundError("Patient not found")
        patient.deleted_at = utcnow()
        patient.status = "INACTIVE"


def patient_stats(ctx: TenantContext, *, recent_days: int = 30) -> dict:
    """Registry counts for the tenant; recent means registered in the last recent_days."""
    base = _patient_query(ctx)
    since = utcnow() - timedelta(days=recent_days)
    return {
        "total_patients": base.count(),
        "active_patients": base.filter(Patient.status == "ACTIVE").count(),
        "inactive_patients": base.filter(Patient.status == "INACTIVE").count(),
        "recent_patients": base.filter(Patient.created_at >= since).count(),
    }
