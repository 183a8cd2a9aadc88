"""
User Service — registration, credential check, lookup.
"""

import logging
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.user import SELF_REGISTER_ROLES, USER_ROLES, User
from app.utils.crypto import hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def _normalize_email(email: str) -> str:
    try:
        return validate_email(email or "", check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", {"email": str(e)})


# ═══════════════════════════════════════════════════════════════
# Registration / login
# ═══════════════════════════════════════════════════════════════
def register_user(
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str = "team_member",
) -> User:
    """Create a user account. The admin role cannot be self-assigned."""
    email = _normalize_email(email)

    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            {"password": "too_short"},
        )
    if not (first_name or "").strip() or not (last_name or "").strip():
        raise ValidationError("first_name and last_name are required")
    if role not in SELF_REGISTER_ROLES:
        raise ValidationError(
            f"role must be one of: {', '.join(SELF_REGISTER_ROLES)}", {"role": role},
        )

    if User.query.filter_by(email=email).first():
        raise ConflictError("User", "email", email)

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User registered id=%s role=%s", user.id, role)
    return user


def authenticate(email: str, password: str) -> User | None:
    """Return the active user matching the credentials, else None."""
    user = User.query.filter_by(email=(email or "").strip().lower()).first()
    if not user or not user.is_active or not verify_password(password or "", user.password_hash):
        logger.info("Failed login for %s", email)
        return None

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user


# ═══════════════════════════════════════════════════════════════
# Lookup
# ═══════════════════════════════════════════════════════════════
def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User", user_id)
    return user


def list_users(role: str | None = None) -> list[User]:
    """Active users, optionally filtered by role, ordered by name."""
    q = User.query.filter_by(is_active=True)
    if role:
        if role not in USER_ROLES:
            raise ValidationError(f"Unknown role: {role}")
        q = q.filter_by(role=role)
    return q.order_by(User.first_name, User.last_name).all()
