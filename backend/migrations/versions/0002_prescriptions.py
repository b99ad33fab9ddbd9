"""prescriptions and prescription items

Revision ID: 0002_prescriptions
Revises: 0001_initial_schema
Create Date: 2026-10-16 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0002_prescriptions'
down_revision = '0001_initial_schema'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'prescriptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('tenants.id'), nullable=False),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=True),
        sa.Column('patient_id', sa.Integer(), sa.ForeignKey('patients.id'), nullable=False),
        sa.Column('prescription_number', sa.String(length=32), nullable=False),
        sa.Column('prescriber_name', sa.String(length=255), nullable=True),
        sa.Column('diagnosis', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('is_urgent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('created_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('verified_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('verification_notes', sa.Text(), nullable=True),
        sa.Column('dispensed_by_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('dispensed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id'), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_prescriptions_tenant_id', 'prescriptions', ['tenant_id'])
    op.create_index('ix_prescriptions_branch_id', 'prescriptions', ['branch_id'])
    op.create_index('ix_prescriptions_patient_id', 'prescriptions', ['patient_id'])
    op.create_index('ix_prescriptions_prescription_number', 'prescriptions', ['prescription_number'], unique=True)
    op.create_index('ix_prescriptions_status', 'prescriptions', ['status'])
    op.create_index('ix_prescriptions_sale_id', 'prescriptions', ['sale_id'])
    op.create_index('ix_prescriptions_tenant_status', 'prescriptions', ['tenant_id', 'status'])
    op.create_index('ix_prescriptions_tenant_patient', 'prescriptions', ['tenant_id', 'patient_id'])

    op.create_table(
        'prescription_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('prescription_id', sa.Integer(), sa.ForeignKey('prescriptions.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('dosage', sa.String(length=64), nullable=True),
        sa.Column('frequency', sa.String(length=64), nullable=True),
        sa.Column('duration_days', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_prescription_items_quantity_positive'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_prescription_items_prescription_id', 'prescription_items', ['prescription_id'])
    op.create_index('ix_prescription_items_product_id', 'prescription_items', ['product_id'])


def downgrade():
    op.drop_table('prescription_items')
    op.drop_table('prescriptions')
