# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service with Multi-Tenant Support

WHY: Every sale is attributed to the cashier who rang it up. Uses bcrypt for
password hashing and validates password strength.

MULTI-TENANT: Users belong to exactly one tenant (tenant_id).
Username/email uniqueness is tenant-scoped.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
- Authentication validates the tenant is active
"""

import bcrypt
import re
from ..extensions import db
from ..models import Branch, Tenant, User
from ..time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    tenant_id: int,
    branch_id: int | None = None,
    *,
    rounds: int = 12,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: If tenant doesn't exist, user exists, or branch doesn't belong to tenant
        PasswordValidationError: If password doesn't meet requirements
    """
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant:
        raise ValueError("Tenant not found")
    if not tenant.is_active:
        raise ValueError("Tenant is not active")

    # MULTI-TENANT: Check uniqueness within tenant
    existing = db.session.query(User).filter(
        User.tenant_id == tenant_id,
        db.or_(User.username == username, User.email == email)
    ).first()

    if existing:
        raise ValueError("Username or email already exists in this tenant")

    if branch_id is not None:
        branch = db.session.query(Branch).filter_by(id=branch_id).first()
        if not branch:
            raise ValueError("Branch not found")
        if branch.tenant_id != tenant_id:
            raise ValueError("Branch does not belong to this tenant")

    user = User(
        tenant_id=tenant_id,
        branch_id=branch_id,
        username=username,
        email=email,
        password_hash=hash_password(password, rounds=rounds),
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str, tenant_code: str | None = None) -> User | None:
    """
    Authenticate user with username (or email) and password.

    MULTI-TENANT: tenant_code scopes the lookup when the same username exists
    in several tenants.

    Returns User if credentials valid and tenant active, None otherwise.
    Updates last_login_at on success.
    """
    query = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    )

    if tenant_code:
        query = query.join(Tenant, Tenant.id == User.tenant_id).filter(Tenant.code == tenant_code)

    user = query.first()

    if not user:
        return None

    tenant = db.session.query(Tenant).filter_by(id=user.tenant_id).first()
    if not tenant or not tenant.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
