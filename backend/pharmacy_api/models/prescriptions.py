from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

# PENDING -> VERIFIED -> DISPENSED; PENDING -> CANCELLED on a failed review
PRESCRIPTION_STATUSES = ("PENDING", "VERIFIED", "DISPENSED", "CANCELLED")


class Prescription(db.Model):
    """
    Prescription written for a patient and reviewed by the pharmacy.

    MULTI-TENANT: Prescriptions are scoped to tenants via tenant_id and always
    reference a patient of the same tenant.

    Dispensing records who handed the medication over and, optionally, the sale
    that charged for it. Stock is deducted by that sale, never by the
    prescription itself.
    """
    __tablename__ = "prescriptions"
    __table_args__ = (
        db.Index("ix_prescriptions_tenant_status", "tenant_id", "status"),
        db.Index("ix_prescriptions_tenant_patient", "tenant_id", "patient_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=False, index=True)

    # Human-readable number (e.g., "RX20261234"), globally unique
    prescription_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    prescriber_name = db.Column(db.String(255), nullable=True)
    diagnosis = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    issue_date = db.Column(db.Date, nullable=False)
    expiry_date = db.Column(db.Date, nullable=True)
    is_urgent = db.Column(db.Boolean, nullable=False, default=False)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    verified_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verification_notes = db.Column(db.Text, nullable=True)

    dispensed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    dispensed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    patient = db.relationship("Patient", backref=db.backref("prescriptions", lazy=True))
    items = db.relationship(
        "PrescriptionItem",
        backref="prescription",
        order_by="PrescriptionItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def is_expired(self, today) -> bool:
        if self.status in ("DISPENSED", "CANCELLED"):
            return False
        return self.expiry_date is not None and self.expiry_date < today

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "patient_id": self.patient_id,
            "prescription_number": self.prescription_number,
            "prescriber_name": self.prescriber_name,
            "diagnosis": self.diagnosis,
            "notes": self.notes,
            "issue_date": self.issue_date.isoformat() if self.issue_date else None,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "is_urgent": self.is_urgent,
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "verified_by_user_id": self.verified_by_user_id,
            "verified_at": to_utc_z(self.verified_at),
            "verification_notes": self.verification_notes,
            "dispensed_by_user_id": self.dispensed_by_user_id,
            "dispensed_at": to_utc_z(self.dispensed_at),
            "sale_id": self.sale_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PrescriptionItem(db.Model):
    """One prescribed medication with its directions."""
    __tablename__ = "prescription_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_prescription_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    prescription_id = db.Column(db.Integer, db.ForeignKey("prescriptions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    dosage = db.Column(db.String(64), nullable=True)       # e.g. "1 tablet"
    frequency = db.Column(db.String(64), nullable=True)    # e.g. "3x daily"
    duration_days = db.Column(db.Integer, nullable=True)
    quantity = db.Column(db.Integer, nullable=False)
    instructions = db.Column(db.Text, nullable=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prescription_id": self.prescription_id,
            "product_id": self.product_id,
            "position": self.position,
            "dosage": self.dosage,
            "frequency": self.frequency,
            "duration_days": self.duration_days,
            "quantity": self.quantity,
            "instructions": self.instructions,
        }
