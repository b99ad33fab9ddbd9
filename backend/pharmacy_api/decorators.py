# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service
from .services.tenant_service import TenantAccessError
from .validation import ValidationError, coerce_int


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.tenant_context: TenantContext handed to every service call
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account or tenant deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.tenant_context = context.tenant_context
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def _requested_branch_id():
    body = request.get_json(silent=True) if request.is_json else None
    if isinstance(body, dict) and body.get("branch_id") not in (None, ""):
        return body["branch_id"]
    return request.args.get("branch_id") or None


def require_branch(f):
    """
    Require a branch in the tenant context.

    A branch_id in the JSON body or query string switches the context to
    that branch after checking it belongs to the caller's tenant. Must be
    applied after @require_auth.

    Returns 404 for a branch outside the tenant, 400 when no branch can be
    resolved (tenant-level user without branch_id).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "tenant_context"):
            return jsonify({"error": "Authentication required"}), 401

        requested = _requested_branch_id()
        if requested is not None:
            try:
                g.tenant_context = g.tenant_context.with_branch(coerce_int(requested, "branch_id"))
            except ValidationError as e:
                return jsonify({"error": str(e)}), 400
            except TenantAccessError as e:
                return jsonify({"error": str(e)}), 404

        if g.tenant_context.branch_id is None:
            return jsonify({"error": "branch_id is required"}), 400

        return f(*args, **kwargs)

    return decorated_function
