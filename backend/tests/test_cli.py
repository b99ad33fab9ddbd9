# Overview: Pytest coverage for the flask CLI command groups.

from pharmacy_api.models import Branch, InventoryRecord, Product, Tenant, User


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init", "--tenant", "Corner Pharmacy", "--tenant-code", "CORNER"])
    assert first.exit_code == 0, first.output
    assert "Created tenant" in first.output

    second = runner.invoke(args=["system", "init", "--tenant-code", "CORNER"])
    assert second.exit_code == 0
    assert "Using existing tenant" in second.output

    tenant = db_session.query(Tenant).filter_by(code="CORNER").one()
    assert db_session.query(Branch).filter_by(tenant_id=tenant.id).count() == 1
    assert db_session.query(User).filter_by(tenant_id=tenant.id, username="admin").count() == 1


def test_tenant_branch_user_product_restock(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["tenants", "create", "--name", "Acme", "--code", "ACME"])
    assert "PASS" in result.output
    tenant = db_session.query(Tenant).filter_by(code="ACME").one()

    dup = runner.invoke(args=["tenants", "create", "--name", "Acme 2", "--code", "ACME"])
    assert "already exists" in dup.output

    runner.invoke(args=["tenants", "add-branch", "--tenant-id", str(tenant.id), "--name", "Downtown", "--code", "DT"])
    branch = db_session.query(Branch).filter_by(tenant_id=tenant.id).one()

    result = runner.invoke(args=[
        "users", "create", "--tenant-id", str(tenant.id), "--branch-id", str(branch.id),
        "--username", "cashier", "--email", "cashier@acme.local", "--password", "Password123!",
    ])
    assert "PASS" in result.output, result.output

    weak = runner.invoke(args=[
        "users", "create", "--tenant-id", str(tenant.id),
        "--username", "weak", "--email", "weak@acme.local", "--password", "weak",
    ])
    assert "Password validation failed" in weak.output

    runner.invoke(args=[
        "products", "create", "--tenant-id", str(tenant.id), "--sku", "AMOX", "--name", "Amoxicillin",
        "--price-cents", "1250", "--prescription",
    ])
    product = db_session.query(Product).filter_by(tenant_id=tenant.id, sku="AMOX").one()
    assert product.requires_prescription is True

    result = runner.invoke(args=[
        "inventory", "restock", "--branch-id", str(branch.id), "--product-id", str(product.id), "--quantity", "12",
    ])
    assert "12 on hand" in result.output
    record = db_session.query(InventoryRecord).filter_by(branch_id=branch.id, product_id=product.id).one()
    assert record.quantity_on_hand == 12

    listing = runner.invoke(args=["tenants", "list"])
    assert "ACME" in listing.output


def test_restock_product_of_other_tenant(app, db_session, branch_a, product_b):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        "inventory", "restock", "--branch-id", str(branch_a.id), "--product-id", str(product_b.id), "--quantity", "1",
    ])
    assert "FAIL Product not found" in result.output
