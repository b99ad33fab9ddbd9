"""
Multi-Tenant Service: Tenant Context and Scoping Helpers

WHY: Centralize tenant validation logic for reuse across services and routes.
Every request is scoped to a tenant, and cross-tenant access must be
explicitly denied.

SECURITY INVARIANTS:
1. Every authenticated request carries a TenantContext (set by @require_auth)
2. Branch IDs from client input are validated against the context tenant
3. Queries touching branch-owned data filter by the tenant's branches
4. Cross-tenant access attempts are logged

USAGE:
    from pharmacy_api.services.tenant_service import require_branch_in_tenant

    branch = require_branch_in_tenant(branch_id, ctx.tenant_id)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..extensions import db
from ..models import Branch, Tenant

logger = logging.getLogger(__name__)


class TenantAccessError(Exception):
    """Raised when cross-tenant access is attempted."""
    pass


@dataclass(frozen=True)
class TenantContext:
    """
    Pre-validated identity of the caller.

    Built by the auth layer from the session record; services trust it and
    never look at tokens themselves.
    """
    tenant_id: int
    branch_id: int | None
    user_id: int

    def with_branch(self, branch_id: int | None) -> "TenantContext":
        """Context acting on another branch of the same tenant (validated)."""
        if branch_id is None or branch_id == self.branch_id:
            return self
        require_branch_in_tenant(branch_id, self.tenant_id)
        return TenantContext(tenant_id=self.tenant_id, branch_id=branch_id, user_id=self.user_id)


def require_branch_in_tenant(branch_id: int, tenant_id: int, session=None) -> Branch:
    """
    Validate that a branch belongs to the specified tenant.

    SECURITY: Core tenant isolation check. Call this before any operation
    that uses a branch_id from client input.

    Raises:
        TenantAccessError if branch doesn't exist or belongs to another tenant.
        The message is the same in both cases so foreign branches are not
        revealed.
    """
    session = session if session is not None else db.session
    branch = session.query(Branch).filter_by(id=branch_id).first()

    if not branch:
        logger.warning("Branch %s not found (tenant %s)", branch_id, tenant_id)
        raise TenantAccessError("Branch not found")

    if branch.tenant_id != tenant_id:
        # CRITICAL: Cross-tenant access attempt
        logger.warning(
            "Cross-tenant access denied: branch %s belongs to tenant %s, not %s",
            branch_id, branch.tenant_id, tenant_id,
        )
        raise TenantAccessError("Branch not found")

    return branch


def get_tenant_branch_ids(tenant_id: int, session=None) -> set[int]:
    """Set of branch IDs for a tenant, for quick membership checks."""
    session = session if session is not None else db.session
    rows = session.query(Branch.id).filter_by(tenant_id=tenant_id).all()
    return {row.id for row in rows}


def validate_tenant_active(tenant_id: int, session=None) -> Tenant:
    """
    Validate that a tenant exists and is active.

    Raises TenantAccessError if tenant doesn't exist or is inactive.
    """
    session = session if session is not None else db.session
    tenant = session.query(Tenant).filter_by(id=tenant_id).first()

    if not tenant:
        raise TenantAccessError("Tenant not found")

    if not tenant.is_active:
        raise TenantAccessError("Tenant is not active")

    return tenant
