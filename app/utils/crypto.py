"""
Crypto utilities — bcrypt password hashing.

Cost factor comes from BCRYPT_ROUNDS (testing lowers it to 4).

Supports both bcrypt ($2b$) and werkzeug (scrypt/pbkdf2) hashes so that
accounts seeded with ``werkzeug.security.generate_password_hash`` still
verify.
"""

import bcrypt
from flask import current_app, has_app_context
from werkzeug.security import check_password_hash


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (BCRYPT_ROUNDS, default 12)."""
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12) if has_app_context() else 12
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its hash."""
    if not password_hash:
        return False

    if password_hash.startswith(("$2b$", "$2a$")):
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )

    return check_password_hash(password_hash, plain_password)
