"""
Project Delivery Platform
Authentication & Authorization decorators.

Provides:
    - require_auth: valid JWT bearer token required (identity from jwt_auth middleware)
    - require_role: caller's role must be one of the given roles
    - Content-Type enforcement for state-changing API requests

Roles: admin, pm, team_member, client (see app.models.user.USER_ROLES).
"""

import functools
import logging

from flask import g, jsonify, request

logger = logging.getLogger(__name__)


def current_user_id():
    return getattr(g, "jwt_user_id", None)


def current_role():
    return getattr(g, "jwt_role", None)


# ── Authentication decorator ─────────────────────────────────────────────────

def require_auth(f):
    """
    Decorator: require a valid access token for the endpoint.

    The jwt_auth middleware has already decoded the token; this only
    enforces that it was present and valid.
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if current_user_id() is None:
            message = getattr(g, "jwt_error", None) or "Authentication required"
            return jsonify({"error": message}), 401
        return f(*args, **kwargs)

    return decorated


def require_role(*roles: str):
    """
    Decorator: require one of *roles*.

    Usage:
        @require_auth
        @require_role("admin", "pm")
        def update_status(pid): ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            role = current_role()
            if not role:
                return jsonify({"error": "Authentication required"}), 401
            if role not in roles:
                logger.warning(
                    "Access denied: role '%s' tried to access %s (requires %s)",
                    role, request.path, ", ".join(roles),
                )
                return jsonify({"error": "Insufficient permissions"}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator


# ── CSRF protection for API ──────────────────────────────────────────────────

def _check_content_type():
    """
    For state-changing requests (POST/PUT/PATCH/DELETE), require
    Content-Type: application/json when a body is present.
    """
    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length and request.content_length > 0:
            return jsonify({
                "error": "Content-Type must be application/json for state-changing requests"
            }), 415
    return None


def init_auth(app):
    """Install the Content-Type guard on API routes."""
    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.method == "OPTIONS":
            return None
        return _check_content_type()

    logger.info("Auth middleware installed")
