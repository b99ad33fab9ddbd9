from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Patient(db.Model):
    """
    Patient master data.

    MULTI-TENANT: Patients are scoped to tenants via tenant_id. branch_id
    records where the patient was registered; any branch of the tenant may
    sell to them.

    patient_number is the human-readable identifier printed on receipts
    (e.g. "PAT20261234"); it is generated, never client-supplied.
    """
    __tablename__ = "patients"
    __table_args__ = (
        db.Index("ix_patients_tenant_name", "tenant_id", "last_name", "first_name"),
        db.Index("ix_patients_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    patient_number = db.Column(db.String(32), nullable=False, unique=True, index=True)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    date_of_birth = db.Column(db.Date, nullable=True)
    gender = db.Column(db.String(16), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    allergies = db.Column(db.Text, nullable=True)
    insurance_provider = db.Column(db.String(128), nullable=True)
    insurance_number = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)  # ACTIVE, INACTIVE

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("patients", lazy=True))
    branch = db.relationship("Branch", backref=db.backref("patients", lazy=True))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "branch_id": self.branch_id,
            "patient_number": self.patient_number,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "gender": self.gender,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "allergies": self.allergies,
            "insurance_provider": self.insurance_provider,
            "insurance_number": self.insurance_number,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
