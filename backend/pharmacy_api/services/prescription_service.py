# Overview: Service-layer operations for prescriptions; encapsulates business logic and database work.

"""
Prescriptions Service - intake, pharmacist review and dispensing.

Lifecycle:
    PENDING --verify(approved)--> VERIFIED --dispense--> DISPENSED
    PENDING --verify(rejected)--> CANCELLED

Only PENDING prescriptions can be edited. A prescription past its expiry
date can be neither verified nor dispensed. DISPENSED prescriptions cannot
be deleted.

Dispensing never moves stock. The medication is charged and deducted by a
normal sale (sales_service.create_sale); dispense() can link that sale.
"""

from __future__ import annotations

import logging
import math
from datetime import date

from sqlalchemy import or_

from ..extensions import db
from ..models import Patient, Prescription, PrescriptionItem, Product, Sale, PRESCRIPTION_STATUSES
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    require_choice,
    require_positive_int,
    validate_payload,
)
from .concurrency import lock_for_update, unit_of_work
from .numbering_service import PRESCRIPTION_NUMBER_PREFIX, NumberGenerationError, generate_unique_number
from .tenant_service import TenantContext

logger = logging.getLogger(__name__)

PRESCRIPTION_FIELDS = {"prescriber_name", "diagnosis", "notes", "issue_date", "expiry_date", "is_urgent"}

PRESCRIPTION_POLICY = ModelValidationPolicy(writable_fields=PRESCRIPTION_FIELDS)

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "dosage", "frequency", "duration_days", "quantity", "instructions"},
    required_on_create={"product_id", "quantity"},
)


class PrescriptionError(Exception):
    """Raised for prescription operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class PrescriptionNotFoundError(PrescriptionError):
    pass


def _today() -> date:
    return utcnow().date()


def _prescription_query(ctx: TenantContext):
    return db.session.query(Prescription).filter(
        Prescription.tenant_id == ctx.tenant_id,
        Prescription.deleted_at.is_(None),
    )


def _load_for_update(ctx: TenantContext, prescription_id: int) -> Prescription:
    prescription = lock_for_update(
        _prescription_query(ctx).filter(Prescription.id == prescription_id)
    ).first()
    if not prescription:
        raise PrescriptionNotFoundError("Prescription not found")
    return prescription


def _parse_header(payload: dict) -> dict:
    header = {k: v for k, v in payload.items() if k not in ("patient_id", "items")}
    patch = validate_payload(model=Prescription, payload=header, policy=PRESCRIPTION_POLICY, partial=True)
    if "is_urgent" in payload and not isinstance(payload["is_urgent"], bool):
        raise ValidationError("is_urgent must be a boolean")
    return patch


def _check_dates(issue_date: date, expiry_date: date | None) -> None:
    if expiry_date is not None and expiry_date < issue_date:
        raise ValidationError("expiry_date cannot be before issue_date")


def _build_items(session, ctx: TenantContext, raw_items) -> list[PrescriptionItem]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Prescription must contain at least one item")

    items = []
    for index, raw in enumerate(raw_items):
        label = f"items[{index}]"
        if not isinstance(raw, dict):
            raise ValidationError(f"{label} must be an object")
        try:
            patch = validate_payload(model=PrescriptionItem, payload=raw, policy=ITEM_POLICY, partial=False)
            patch["product_id"] = require_positive_int(patch["product_id"], "product_id")
            patch["quantity"] = require_positive_int(patch["quantity"], "quantity")
            if patch.get("duration_days") is not None:
                patch["duration_days"] = require_positive_int(patch["duration_days"], "duration_days")
        except ValidationError as e:
            raise ValidationError(f"{label}: {e}") from e

        product = session.query(Product).filter_by(id=patch["product_id"], tenant_id=ctx.tenant_id).first()
        if not product:
            raise ValidationError(f"{label}: product {patch['product_id']} not found")

        items.append(PrescriptionItem(position=index + 1, **patch))
    return items


def create_prescription(ctx: TenantContext, payload: dict, *, rng=None) -> Prescription:
    """
    Record a new prescription in PENDING state.

    Request body fields: patient_id (required), items (required, non-empty),
    prescriber_name, diagnosis, notes, issue_date (defaults to today),
    expiry_date, is_urgent.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    patient_id = require_positive_int(payload.get("patient_id"), "patient_id")
    patch = _parse_header(payload)
    patch.setdefault("issue_date", _today())
    _check_dates(patch["issue_date"], patch.get("expiry_date"))

    with unit_of_work() as uow:
        patient = uow.query(Patient).filter(
            Patient.id == patient_id,
            Patient.tenant_id == ctx.tenant_id,
            Patient.deleted_at.is_(None),
        ).first()
        if not patient:
            raise ValidationError("Patient not found")

        items = _build_items(uow, ctx, payload.get("items"))

        try:
            number = generate_unique_number(uow, Prescription.prescription_number, PRESCRIPTION_NUMBER_PREFIX, rng=rng)
        except NumberGenerationError as exc:
            raise ConflictError(str(exc)) from exc

        prescription = Prescription(
            tenant_id=ctx.tenant_id,
            branch_id=ctx.branch_id,
            patient_id=patient.id,
            prescription_number=number,
            status="PENDING",
            created_by_user_id=ctx.user_id,
            **patch,
        )
        prescription.items.extend(items)
        uow.add(prescription)

    logger.info(
        "Recorded prescription %s for patient %s with %d item(s)",
        prescription.prescription_number, prescription.patient_id, len(items),
    )
    return prescription


def get_prescription(ctx: TenantContext, prescription_id: int) -> Prescription:
    prescription = _prescription_query(ctx).filter(Prescription.id == prescription_id).first()
    if not prescription:
        raise PrescriptionNotFoundError("Prescription not found")
    return prescription


def list_prescriptions(
    ctx: TenantContext,
    *,
    page: int = 1,
    page_size: int = 50,
    status: str | None = None,
    patient_id: int | None = None,
    search: str | None = None,
) -> dict:
    """Newest first. search matches prescription number, prescriber or diagnosis."""
    query = _prescription_query(ctx)

    if status:
        query = query.filter(Prescription.status == require_choice(status, "status", PRESCRIPTION_STATUSES))
    if patient_id is not None:
        query = query.filter(Prescription.patient_id == patient_id)
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Prescription.prescription_number.ilike(term),
                Prescription.prescriber_name.ilike(term),
                Prescription.diagnosis.ilike(term),
            )
        )

    total_count = query.count()
    prescriptions = (
        query.order_by(Prescription.issue_date.desc(), Prescription.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return {
        "prescriptions": prescriptions,
        "pagination": {
            "page": page,
            "page_size": page_size,
            "total_count": total_count,
            "total_pages": math.ceil(total_count / page_size) if page_size else 0,
        },
    }


def list_pending(ctx: TenantContext) -> list[Prescription]:
    """Work queue for review: PENDING and VERIFIED, urgent first, then oldest first."""
    return (
        _prescription_query(ctx)
        .filter(Prescription.status.in_(("PENDING", "VERIFIED")))
        .order_by(Prescription.is_urgent.desc(), Prescription.issue_date.asc(), Prescription.id.asc())
        .all()
    )


def list_expired(ctx: TenantContext, *, today: date | None = None) -> list[Prescription]:
    """Open (PENDING/VERIFIED) prescriptions whose expiry date has passed."""
    today = today or _today()
    return (
        _prescription_query(ctx)
        .filter(
            Prescription.status.in_(("PENDING", "VERIFIED")),
            Prescription.expiry_date.isnot(None),
            Prescription.expiry_date < today,
        )
        .order_by(Prescription.expiry_date.asc(), Prescription.id.asc())
        .all()
    )


def update_prescription(ctx: TenantContext, prescription_id: int, payload: dict) -> Prescription:
    """Edit a PENDING prescription. items, when given, replace the whole list."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    if "patient_id" in payload:
        raise ValidationError("Field not allowed: patient_id")
    patch = _parse_header(payload)
    if not patch and "items" not in payload:
        raise ValidationError("Nothing to update")

    with unit_of_work() as uow:
        prescription = _load_for_update(ctx, prescription_id)
        if prescription.status != "PENDING":
            raise ConflictError(f"Cannot edit a {prescription.status} prescription")

        _check_dates(
            patch.get("issue_date", prescription.issue_date),
            patch.get("expiry_date", prescription.expiry_date),
        )

        for key, value in patch.items():
            setattr(prescription, key, value)
        if "items" in payload:
            prescription.items = _build_items(uow, ctx, payload["items"])
        prescription.updated_at = utcnow()

    return prescription


def verify_prescription(
    ctx: TenantContext,
    prescription_id: int,
    *,
    approved: bool,
    notes: str | None = None,
) -> Prescription:
    """Pharmacist review: approved -> VERIFIED, rejected -> CANCELLED."""
    if not isinstance(approved, bool):
        raise ValidationError("is_verified must be a boolean")

    with unit_of_work():
        prescription = _load_for_update(ctx, prescription_id)
        if prescription.status != "PENDING":
            raise ConflictError(f"Cannot verify a {prescription.status} prescription")
        if prescription.is_expired(_today()):
            raise ConflictError("Prescription has expired")

        prescription.status = "VERIFIED" if approved else "CANCELLED"
        prescription.verified_by_user_id = ctx.user_id
        prescription.verified_at = utcnow()
        prescription.verification_notes = notes
        prescription.updated_at = utcnow()

    logger.info("Prescription %s reviewed: %s", prescription.prescription_number, prescription.status)
    return prescription


def dispense_prescription(
    ctx: TenantContext,
    prescription_id: int,
    *,
    sale_id=None,
    notes: str | None = None,
) -> Prescription:
    """
    Mark a VERIFIED prescription as handed over.

    sale_id, when given, must be a live sale of the tenant made for the same
    patient (or for no recorded patient).
    """
    if sale_id is not None:
        sale_id = require_positive_int(sale_id, "sale_id")

    with unit_of_work() as uow:
        prescription = _load_for_update(ctx, prescription_id)
        if prescription.status != "VERIFIED":
            raise ConflictError(f"Cannot dispense a {prescription.status} prescription")
        if prescription.is_expired(_today()):
            raise ConflictError("Prescription has expired")

        if sale_id is not None:
            sale = uow.query(Sale).filter(
                Sale.id == sale_id,
                Sale.tenant_id == ctx.tenant_id,
                Sale.deleted_at.is_(None),
            ).first()
            if not sale:
                raise ValidationError("Sale not found")
            if sale.patient_id is not None and sale.patient_id != prescription.patient_id:
                raise ValidationError("Sale belongs to a different patient")
            prescription.sale_id = sale.id

        prescription.status = "DISPENSED"
        prescription.dispensed_by_user_id = ctx.user_id
        prescription.dispensed_at = utcnow()
        if notes:
            prescription.notes = f"{prescription.notes}\n{notes}" if prescription.notes else notes
        prescription.updated_at = utcnow()

    logger.info("Dispensed prescription %s", prescription.prescription_number)
    return prescription


def delete_prescription(ctx: TenantContext, prescription_id: int) -> None:
    """Soft delete. Dispensed prescriptions are kept as a record."""
    with unit_of_work():
        prescription = _load_for_update(ctx, prescription_id)
        if prescription.status == "DISPENSED":
            raise ConflictError("Cannot delete a dispensed prescription")
        prescription.deleted_at = utcnow()
