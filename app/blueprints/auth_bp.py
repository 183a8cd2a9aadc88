"""
Auth Blueprint — JWT authentication endpoints.

  POST /api/v1/auth/register    — Create account → access token
  POST /api/v1/auth/login       — Email + password → access token
  GET  /api/v1/auth/me          — Current user profile
  GET  /api/v1/users            — Active users (?role= filter), for staffing pickers
"""

import logging

from flask import Blueprint, jsonify, request

from app.auth import current_user_id, require_auth
from app.blueprints import json_body, register_error_handlers
from app.services import user_service
from app.services.jwt_service import token_response

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1")
register_error_handlers(auth_bp)


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/auth/register", methods=["POST"])
def register():
    """
    Create an account and return an access token.

    Body: { "email", "password", "first_name", "last_name", "role"? }
    """
    data = json_body()
    if not data.get("email") or not data.get("password"):
        return jsonify({"error": "Email and password are required"}), 400

    user = user_service.register_user(
        email=data["email"],
        password=data["password"],
        first_name=data.get("first_name", ""),
        last_name=data.get("last_name", ""),
        role=data.get("role") or "team_member",
    )
    return jsonify({
        "message": "User registered successfully",
        **token_response(user.id, user.role),
        "user": user.to_dict(),
    }), 201


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/auth/login", methods=["POST"])
def login():
    """
    Authenticate with email + password.

    Body: { "email": "...", "password": "..." }
    """
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    user = user_service.authenticate(email, password)
    if user is None:
        return jsonify({"error": "Invalid credentials"}), 401

    logger.info("User %s logged in", user.id)
    return jsonify({
        "message": "Login successful",
        **token_response(user.id, user.role),
        "user": user.to_dict(),
    })


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/auth/me", methods=["GET"])
@require_auth
def me():
    user = user_service.get_user(current_user_id())
    return jsonify({"user": user.to_dict()})


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/users
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/users", methods=["GET"])
@require_auth
def list_users():
    users = user_service.list_users(request.args.get("role"))
    return jsonify([u.to_dict() for u in users])
