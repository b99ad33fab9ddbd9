# Overview: Flask CLI command groups for bootstrap and day-to-day administration.

# backend/pharmacy_api/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Apply migrations first: python -m flask db upgrade
#
# System bootstrap:
# - python -m flask system init [--tenant "Pharmacy Name"] [--tenant-code MAIN]
#   Idempotent bootstrap: default tenant, main branch and an admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management:
# - python -m flask tenants list
# - python -m flask tenants create --name "Acme Pharmacy" --code ACME
# - python -m flask tenants add-branch --tenant-id 1 --name "Downtown" --code DT
#
# Users:
# - python -m flask users list [--tenant-id 1]
# - python -m flask users create --tenant-id 1 [--branch-id 1] --username cashier --email c@x.local --password "Password123!"
#
# Catalog and stock:
# - python -m flask products create --tenant-id 1 --sku AMOX-500 --name "Amoxicillin 500mg" --price-cents 1250
# - python -m flask inventory restock --branch-id 1 --product-id 1 --quantity 50

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Branch, Tenant, User
from .services.auth_service import create_user, PasswordValidationError
from .services import inventory_service, products_service
from .services.inventory_service import InventoryError
from .services.tenant_service import TenantAccessError, TenantContext
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--tenant', 'tenant_name', default='Default Pharmacy', help='Tenant name')
@click.option('--tenant-code', default='DEFAULT', help='Tenant code')
@click.option('--password', default='Password123!', help='Password for the admin user')
@with_appcontext
def init_system(tenant_name, tenant_code, password):
    """
    Initialize a default tenant, its main branch and an admin user.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing pharmacy system...")

    tenant = db.session.query(Tenant).filter_by(code=tenant_code).first()
    if not tenant:
        tenant = Tenant(name=tenant_name, code=tenant_code, is_active=True)
        db.session.add(tenant)
        db.session.commit()
        click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")
    else:
        click.echo(f"PASS Using existing tenant: {tenant.name} (ID: {tenant.id})")

    branch = db.session.query(Branch).filter_by(tenant_id=tenant.id).first()
    if not branch:
        branch = Branch(tenant_id=tenant.id, name="Main Branch", code="MAIN")
        db.session.add(branch)
        db.session.commit()
        click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")
    else:
        click.echo(f"PASS Using existing branch: {branch.name} (ID: {branch.id})")

    existing = db.session.query(User).filter_by(tenant_id=tenant.id, username="admin").first()
    if existing:
        click.echo("WARN  User 'admin' already exists in tenant, skipping...")
    else:
        try:
            create_user(
                username="admin",
                email="admin@pharmacy.local",
                password=password,
                tenant_id=tenant.id,
                branch_id=branch.id,
            )
            click.echo("PASS Created user: admin (admin@pharmacy.local)")
        except (PasswordValidationError, ValueError) as e:
            click.echo(f"FAIL Failed to create user 'admin': {e}")

    click.echo("DONE Pharmacy system initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


# =============================================================================
# TENANT MANAGEMENT COMMANDS
# =============================================================================

@click.group('tenants')
def tenants_group():
    """Tenant (pharmacy business) management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Branches':<9} {'Users'}")
    click.echo("="*80)

    for tenant in tenants:
        branch_count = db.session.query(Branch).filter_by(tenant_id=tenant.id).count()
        user_count = db.session.query(User).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code:<15} {active_str:<8} {branch_count:<9} {user_count}")

    click.echo("="*80 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_tenant_cli(name, code):
    """Create a new tenant."""
    if db.session.query(Tenant).filter_by(code=code).first():
        click.echo(f"FAIL Tenant with code '{code}' already exists")
        return

    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


@tenants_group.command('add-branch')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--name', required=True, help='Branch name')
@click.option('--code', help='Branch code (unique within tenant)')
@click.option('--phone', help='Branch phone')
@click.option('--address', help='Branch address')
@with_appcontext
def add_branch_cli(tenant_id, name, code, phone, address):
    """Add a branch to a tenant."""
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant:
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        return

    if db.session.query(Branch).filter_by(tenant_id=tenant_id, name=name).first():
        click.echo(f"FAIL Branch '{name}' already exists in this tenant")
        return

    branch = Branch(tenant_id=tenant_id, name=name, code=code, phone=phone, address=address)
    db.session.add(branch)
    db.session.commit()

    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id}) in tenant '{tenant.name}'")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--tenant-id', type=int, help='Only users of this tenant')
@with_appcontext
def list_users(tenant_id):
    query = db.session.query(User)
    if tenant_id:
        query = query.filter_by(tenant_id=tenant_id)
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    for user in users:
        active_str = "active" if user.is_active else "inactive"
        branch = user.branch_id if user.branch_id is not None else "-"
        click.echo(f"{user.id:<5} {user.username:<20} {user.email:<30} tenant={user.tenant_id} branch={branch} {active_str}")


@users_group.command('create')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--branch-id', type=int, help='Home branch (omit for tenant-level users)')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user_cli(tenant_id, branch_id, username, email, password):
    """Create a user within a tenant."""
    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            tenant_id=tenant_id,
            branch_id=branch_id,
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user: {user.username} (ID: {user.id})")


# =============================================================================
# CATALOG AND STOCK COMMANDS
# =============================================================================

@click.group('products')
def products_group():
    """Product catalog commands."""


@products_group.command('create')
@click.option('--tenant-id', type=int, required=True)
@click.option('--sku', required=True)
@click.option('--name', required=True)
@click.option('--price-cents', type=int, required=True, help='Unit price in cents')
@click.option('--generic-name')
@click.option('--dosage-form')
@click.option('--strength')
@click.option('--prescription/--no-prescription', default=False, help='Requires prescription')
@with_appcontext
def create_product_cli(tenant_id, sku, name, price_cents, generic_name, dosage_form, strength, prescription):
    """Add a product to a tenant's catalog."""
    if not db.session.query(Tenant).filter_by(id=tenant_id).first():
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        return

    ctx = TenantContext(tenant_id=tenant_id, branch_id=None, user_id=0)
    payload = {
        "sku": sku,
        "name": name,
        "generic_name": generic_name,
        "dosage_form": dosage_form,
        "strength": strength,
        "requires_prescription": prescription,
        "unit_price_cents": price_cents,
    }
    try:
        product = products_service.create_product(ctx, payload)
    except ConflictError:
        click.echo(f"FAIL Product with SKU '{sku}' already exists in this tenant")
        return
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created product: {product.sku} {product.name} (ID: {product.id})")


@click.group('inventory')
def inventory_group():
    """Stock commands."""


@inventory_group.command('restock')
@click.option('--branch-id', type=int, required=True)
@click.option('--product-id', type=int, required=True)
@click.option('--quantity', type=int, required=True)
@click.option('--reorder-level', type=int)
@with_appcontext
def restock_cli(branch_id, product_id, quantity, reorder_level):
    """Add stock for a product at a branch."""
    branch = db.session.query(Branch).filter_by(id=branch_id).first()
    if not branch:
        click.echo(f"FAIL Branch ID {branch_id} not found")
        return

    # CLI acts as the tenant that owns the branch
    ctx = TenantContext(tenant_id=branch.tenant_id, branch_id=branch.id, user_id=0)
    try:
        record = inventory_service.restock(
            ctx, product_id=product_id, quantity=quantity, reorder_level=reorder_level
        )
    except (ValidationError, InventoryError, TenantAccessError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(
        f"PASS Product {product_id} at branch {branch_id}: {record.quantity_on_hand} on hand"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(inventory_group)
